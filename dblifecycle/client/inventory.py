from __future__ import annotations

import logging
from typing import Iterable

from dblifecycle.client.base import ClientBase, MaskLike
from dblifecycle.client.context import CallContext
from dblifecycle.core.errors import InternalError, InvalidArgumentError, LifecycleError
from dblifecycle.domain import names
from dblifecycle.domain.models import (
    BatchUpdateDatabasesResponse,
    BatchUpdateResult,
    Database,
    DatabasePatch,
    DatabaseRole,
    DatabaseRolePatch,
    ErrorStatus,
    Instance,
    InstancePatch,
    Page,
)
from dblifecycle.providers.transport.base import TransportRequest
from dblifecycle.services.field_mask import FieldMask, coerce_mask, patch_body, validate_mask
from dblifecycle.services.filters import DatabaseFilter, InstanceFilter


logger = logging.getLogger(__name__)

ALL_INSTANCES = f"{names.INSTANCES}/{names.ANY_ID}"


class InventoryMixin(ClientBase):
    # Instances

    async def list_instances(
        self,
        ctx: CallContext,
        filter: InstanceFilter | None = None,
        *,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[Instance]:
        return await self._list(
            ctx, None, names.INSTANCES, Instance, filter=filter, page_size=page_size, page_token=page_token
        )

    async def get_instance(self, ctx: CallContext, name: str) -> Instance:
        return await self._get(ctx, name, names.INSTANCES, Instance)

    async def create_instance(self, ctx: CallContext, instance: Instance) -> Instance:
        return await self._create(ctx, instance, names.INSTANCES, Instance)

    async def update_instance(self, ctx: CallContext, patch: InstancePatch, mask: MaskLike = None) -> Instance:
        return await self._update(ctx, patch, mask, names.INSTANCES, Instance)

    async def delete_instance(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.INSTANCES)

    async def undelete_instance(self, ctx: CallContext, name: str) -> Instance:
        return await self._undelete(ctx, name, names.INSTANCES, Instance)

    async def sync_instance_schema(self, ctx: CallContext, name: str) -> None:
        """Ask the server to sync the instance schema.

        Returns once the request is accepted, not when the sync finishes;
        observe completion through later get_instance/get_database calls.
        """
        names.require_collection(name, names.INSTANCES)
        await self._invoke(ctx, TransportRequest("POST", f"{name}:sync", body={"name": name}))

    # Databases

    async def list_databases(
        self,
        ctx: CallContext,
        parent: str = ALL_INSTANCES,
        filter: DatabaseFilter | None = None,
        *,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[Database]:
        return await self._list(
            ctx, parent, names.DATABASES, Database, filter=filter, page_size=page_size, page_token=page_token
        )

    async def get_database(self, ctx: CallContext, name: str) -> Database:
        return await self._get(ctx, name, names.DATABASES, Database)

    async def update_database(self, ctx: CallContext, patch: DatabasePatch, mask: MaskLike = None) -> Database:
        return await self._update(ctx, patch, mask, names.DATABASES, Database)

    async def batch_update_databases(
        self,
        ctx: CallContext,
        requests: Iterable[tuple[DatabasePatch, MaskLike]],
    ) -> BatchUpdateDatabasesResponse:
        """Apply each (patch, mask) independently; the batch is not transactional.

        Entries that fail local validation are reported as per-entry
        INVALID_ARGUMENT results and never sent. Results keep request order.
        """
        entries = list(requests)
        results: list[BatchUpdateResult | None] = [None] * len(entries)
        wire: list[dict] = []
        sent: list[int] = []
        for index, (patch, mask) in enumerate(entries):
            try:
                names.require_collection(patch.name, names.DATABASES)
                field_mask = coerce_mask(mask) if mask is not None else FieldMask.from_patch(patch)
                if not field_mask:
                    raise InvalidArgumentError("Update mask must name at least one field")
                validate_mask(DatabasePatch, field_mask, patch)
            except LifecycleError as exc:
                results[index] = BatchUpdateResult(
                    name=patch.name, error=ErrorStatus(code=exc.code.value, message=exc.message)
                )
                continue
            wire.append({"database": patch_body(patch, field_mask), "updateMask": field_mask.to_param()})
            sent.append(index)
        if wire:
            request = TransportRequest("POST", f"{ALL_INSTANCES}/{names.DATABASES}:batchUpdate", body={"requests": wire})
            response = self._decode(BatchUpdateDatabasesResponse.from_wire, await self._invoke(ctx, request))
            if len(response.results) != len(sent):
                raise InternalError(
                    f"batchUpdate returned {len(response.results)} results for {len(sent)} requests"
                )
            for index, result in zip(sent, response.results):
                results[index] = result
        merged = [result for result in results if result is not None]
        logger.debug("batch_update_databases total=%d failed=%d", len(merged), sum(1 for r in merged if not r.ok))
        return BatchUpdateDatabasesResponse(results=merged)

    # Database roles

    async def list_database_roles(
        self,
        ctx: CallContext,
        instance: str,
        *,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[DatabaseRole]:
        return await self._list(
            ctx, instance, names.DATABASE_ROLES, DatabaseRole, page_size=page_size, page_token=page_token
        )

    async def get_database_role(self, ctx: CallContext, name: str) -> DatabaseRole:
        return await self._get(ctx, name, names.DATABASE_ROLES, DatabaseRole)

    async def create_database_role(self, ctx: CallContext, role: DatabaseRole) -> DatabaseRole:
        return await self._create(ctx, role, names.DATABASE_ROLES, DatabaseRole)

    async def update_database_role(
        self, ctx: CallContext, patch: DatabaseRolePatch, mask: MaskLike = None
    ) -> DatabaseRole:
        return await self._update(ctx, patch, mask, names.DATABASE_ROLES, DatabaseRole)

    async def delete_database_role(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.DATABASE_ROLES)
