from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class TransportRequest:
    """One verb against one resource path.

    ``path`` is relative to the API version root, e.g. ``projects/proj-a`` or
    ``projects/proj-a:undelete``. ``update_mask`` is the comma-joined field
    mask and travels as the ``update_mask`` query parameter.
    """

    method: str
    path: str
    body: dict[str, Any] | None = None
    params: dict[str, str] = field(default_factory=dict)
    update_mask: str | None = None

    def query_params(self) -> dict[str, str]:
        params = dict(self.params)
        if self.update_mask:
            params["update_mask"] = self.update_mask
        return params


class Transport(Protocol):
    async def invoke(self, request: TransportRequest) -> dict[str, Any]:
        ...

    async def aclose(self) -> None:
        ...
