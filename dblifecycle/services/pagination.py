from __future__ import annotations

import base64
import binascii
import hashlib
import json
from typing import Any, Sequence, TypeVar

from dblifecycle.core.errors import InvalidArgumentError


T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100


def request_fingerprint(**params: Any) -> str:
    # Bind tokens to the listing that minted them (parent, filter, showDeleted).
    raw = json.dumps(params, separators=(",", ":"), sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def encode_page_token(offset: int, fingerprint: str) -> str:
    raw = json.dumps({"v": 1, "offset": offset, "fp": fingerprint}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def decode_page_token(token: str, fingerprint: str) -> int:
    # Reject tokens that were altered or replayed against a different listing.
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("utf-8"))
        payload = json.loads(raw.decode("utf-8"))
    except (ValueError, binascii.Error) as exc:
        raise InvalidArgumentError("Invalid page token") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("offset"), int) or payload["offset"] < 0:
        raise InvalidArgumentError("Invalid page token")
    if payload.get("fp") != fingerprint:
        raise InvalidArgumentError("Page token does not match the listing request")
    return payload["offset"]


def paginate(
    items: Sequence[T],
    *,
    page_size: int | None,
    page_token: str | None,
    fingerprint: str,
    max_page_size: int,
) -> tuple[list[T], str]:
    """Slice one page out of ``items`` and mint the token for the next one.

    ``items`` must already be filtered and in a stable order; the token only
    records an offset into that order. An empty next token marks the last page.
    """
    if page_size is not None and page_size < 0:
        raise InvalidArgumentError("page_size must not be negative")
    size = min(page_size or DEFAULT_PAGE_SIZE, max_page_size)
    offset = decode_page_token(page_token, fingerprint) if page_token else 0
    page = list(items[offset : offset + size])
    next_offset = offset + len(page)
    next_token = encode_page_token(next_offset, fingerprint) if next_offset < len(items) else ""
    return page, next_token
