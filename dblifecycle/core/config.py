from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


# Well-known id of the built-in project that owns unassigned databases.
DEFAULT_PROJECT_ID = "default"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "dblifecycle"
    log_level: str = "INFO"

    # Root URL of the management API; the version segment is appended per request.
    base_url: str = "http://localhost:8080"
    api_version: str = "v1"
    # Service account used by connect() to establish the caller identity.
    service_email: str | None = None
    service_password: str | None = None
    # Leave unset so the call context deadline stays authoritative.
    http_timeout_s: float | None = None
    # Select the transport backend: "http" talks to base_url, "sandbox" runs in-process.
    transport: str = "http"
    # Page size used when walking every page of a list endpoint.
    list_page_size: int = 500

    # Built-in project id for the in-process sandbox server.
    sandbox_default_project_id: str = DEFAULT_PROJECT_ID
    # Bootstrap credentials accepted by the sandbox login endpoint.
    sandbox_admin_email: str = "admin@example.com"
    sandbox_admin_password: str = "admin"
    # Upper bound applied to page_size requests on the sandbox.
    sandbox_max_page_size: int = 1000


@lru_cache
def get_settings() -> Settings:
    return Settings()
