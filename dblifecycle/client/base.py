from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, TypeVar

from pydantic import ValidationError

from dblifecycle.client.context import CallContext
from dblifecycle.core.errors import InternalError, InvalidArgumentError, NotFoundError
from dblifecycle.domain import names
from dblifecycle.domain.models import ApiModel, Caller, Page, PatchModel
from dblifecycle.providers.transport.base import Transport, TransportRequest
from dblifecycle.services.field_mask import (
    FieldMask,
    coerce_mask,
    patch_body,
    validate_mask,
    validate_upsert_mask,
)
from dblifecycle.services.filters import ListFilter


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=ApiModel)
R = TypeVar("R")

DEFAULT_LIST_PAGE_SIZE = 500

MaskLike = FieldMask | Iterable[str] | None


class ClientBase:
    """Shared verb plumbing for the resource family mixins.

    Holds the transport and the caller snapshot. Every helper validates its
    inputs before any transport call and routes the call through the
    context so cancellation and deadlines reach the in-flight request.
    """

    def __init__(self, transport: Transport, caller: Caller, *, list_page_size: int = DEFAULT_LIST_PAGE_SIZE) -> None:
        self._transport = transport
        self._caller = caller
        self._list_page_size = list_page_size

    def get_caller(self) -> Caller:
        # Snapshot taken at construction; no round-trip.
        return self._caller

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def _invoke(self, ctx: CallContext, request: TransportRequest) -> dict[str, Any]:
        return await ctx.run(lambda: self._transport.invoke(request))

    def _decode(self, parse: Callable[..., R], payload: Any, **kwargs: Any) -> R:
        # A payload the models reject is an unexpected server response.
        try:
            return parse(payload, **kwargs)
        except ValidationError as exc:
            logger.warning("response_decode_failed errors=%d", exc.error_count())
            raise InternalError(f"Unexpected server response: {exc.error_count()} invalid field(s)") from exc

    async def _get(
        self,
        ctx: CallContext,
        name: str,
        collection: str,
        model: type[M],
        params: dict[str, str] | None = None,
    ) -> M:
        names.require_collection(name, collection)
        payload = await self._invoke(ctx, TransportRequest("GET", name, params=params or {}))
        return self._decode(model.from_wire, payload)

    async def _list(
        self,
        ctx: CallContext,
        parent: str | None,
        collection: str,
        model: type[M],
        *,
        filter: ListFilter | None = None,
        page_size: int | None = None,
        page_token: str | None = None,
        params: dict[str, str] | None = None,
    ) -> Page[M]:
        if parent:
            names.validate_collection_parent(parent, collection)
        if page_size is not None and page_size < 0:
            raise InvalidArgumentError("page_size must not be negative")
        query = dict(params or {})
        if filter is not None:
            query.update(filter.to_params())
        if page_size:
            query["page_size"] = str(page_size)
        if page_token:
            # Opaque; passed back exactly as received.
            query["page_token"] = page_token
        path = f"{parent}/{collection}" if parent else collection
        start = time.monotonic()
        payload = await self._invoke(ctx, TransportRequest("GET", path, params=query))
        page = self._decode(Page.from_wire, payload, key=collection, item_type=model)
        logger.debug(
            "list_page collection=%s count=%d ms=%d",
            collection,
            len(page.items),
            int((time.monotonic() - start) * 1000),
        )
        return page

    async def _create(self, ctx: CallContext, record: M, collection: str, model: type[M]) -> M:
        parsed = names.require_collection(record.name, collection)
        parent = str(parsed.parent) if parsed.parent else None
        path = f"{parent}/{collection}" if parent else collection
        request = TransportRequest(
            "POST",
            path,
            body=record.to_wire(),
            params={names.CREATE_ID_PARAMS[collection]: parsed.id},
        )
        return self._decode(model.from_wire, await self._invoke(ctx, request))

    async def _update(
        self,
        ctx: CallContext,
        patch: PatchModel,
        mask: MaskLike,
        collection: str,
        model: type[M],
    ) -> M:
        names.require_collection(patch.name, collection)
        field_mask = coerce_mask(mask) if mask is not None else FieldMask.from_patch(patch)
        if not field_mask:
            raise InvalidArgumentError("Update mask must name at least one field")
        validate_mask(type(patch), field_mask, patch)
        request = TransportRequest(
            "PATCH",
            patch.name,
            body=patch_body(patch, field_mask),
            update_mask=field_mask.to_param(),
        )
        return self._decode(model.from_wire, await self._invoke(ctx, request))

    async def _upsert(self, ctx: CallContext, record: M, mask: MaskLike, collection: str) -> M:
        names.require_collection(record.name, collection)
        field_mask = coerce_mask(mask)
        validate_upsert_mask(type(record), field_mask)
        request = TransportRequest(
            "PATCH",
            record.name,
            body=record.to_wire(),
            params={"allow_missing": "true"},
            update_mask=field_mask.to_param() or None,
        )
        return self._decode(type(record).from_wire, await self._invoke(ctx, request))

    async def _delete(self, ctx: CallContext, name: str, collection: str) -> None:
        names.require_collection(name, collection)
        await self._invoke(ctx, TransportRequest("DELETE", name))

    async def _undelete(self, ctx: CallContext, name: str, collection: str, model: type[M]) -> M:
        names.require_collection(name, collection)
        payload = await self._invoke(ctx, TransportRequest("POST", f"{name}:undelete", body={"name": name}))
        return self._decode(model.from_wire, payload)

    async def check_resource_exist(self, ctx: CallContext, name: str) -> bool:
        """Return whether ``name`` resolves to an existing resource.

        Soft-deleted resources still exist. Only NOT_FOUND maps to False; every
        other failure propagates.
        """
        names.parse_name(name)
        try:
            await self._invoke(ctx, TransportRequest("GET", name))
        except NotFoundError:
            return False
        return True

    async def iterate(
        self,
        ctx: CallContext,
        list_method: Callable[..., Awaitable[Page[M]]],
        *args: Any,
        **kwargs: Any,
    ) -> AsyncIterator[M]:
        """Walk every page of ``list_method`` until the next token is empty.

        The context is checked before each page so cancellation stops the walk
        without issuing another transport call.
        """
        kwargs.setdefault("page_size", self._list_page_size)
        token: str | None = None
        total = 0
        while True:
            ctx.check()
            page = await list_method(ctx, *args, page_token=token, **kwargs)
            total += len(page.items)
            for item in page.items:
                yield item
            if not page.next_page_token:
                logger.debug("list_walk_done total=%d", total)
                return
            token = page.next_page_token

    async def list_all(
        self,
        ctx: CallContext,
        list_method: Callable[..., Awaitable[Page[M]]],
        *args: Any,
        **kwargs: Any,
    ) -> list[M]:
        return [item async for item in self.iterate(ctx, list_method, *args, **kwargs)]
