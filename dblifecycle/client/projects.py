from __future__ import annotations

from dblifecycle.client.base import ClientBase, MaskLike
from dblifecycle.client.context import CallContext
from dblifecycle.domain import names
from dblifecycle.domain.enums import DatabaseGroupView
from dblifecycle.domain.models import (
    DatabaseGroup,
    DatabaseGroupPatch,
    IamPolicy,
    Page,
    Project,
    ProjectPatch,
)
from dblifecycle.providers.transport.base import TransportRequest
from dblifecycle.services.filters import ProjectFilter


class ProjectMixin(ClientBase):
    # Projects

    async def list_projects(
        self,
        ctx: CallContext,
        filter: ProjectFilter | None = None,
        *,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[Project]:
        return await self._list(
            ctx, None, names.PROJECTS, Project, filter=filter, page_size=page_size, page_token=page_token
        )

    async def get_project(self, ctx: CallContext, name: str) -> Project:
        return await self._get(ctx, name, names.PROJECTS, Project)

    async def create_project(self, ctx: CallContext, project: Project) -> Project:
        return await self._create(ctx, project, names.PROJECTS, Project)

    async def update_project(self, ctx: CallContext, patch: ProjectPatch, mask: MaskLike = None) -> Project:
        return await self._update(ctx, patch, mask, names.PROJECTS, Project)

    async def delete_project(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.PROJECTS)

    async def undelete_project(self, ctx: CallContext, name: str) -> Project:
        return await self._undelete(ctx, name, names.PROJECTS, Project)

    async def get_project_iam_policy(self, ctx: CallContext, name: str) -> IamPolicy:
        names.require_collection(name, names.PROJECTS)
        payload = await self._invoke(ctx, TransportRequest("GET", f"{name}:getIamPolicy"))
        return self._decode(IamPolicy.from_wire, payload)

    async def set_project_iam_policy(self, ctx: CallContext, name: str, policy: IamPolicy) -> IamPolicy:
        # Full replacement of the bindings list; there is no delta verb.
        names.require_collection(name, names.PROJECTS)
        request = TransportRequest("POST", f"{name}:setIamPolicy", body={"policy": policy.to_wire()})
        return self._decode(IamPolicy.from_wire, await self._invoke(ctx, request))

    # Database groups

    async def list_database_groups(
        self,
        ctx: CallContext,
        project: str,
        *,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[DatabaseGroup]:
        return await self._list(
            ctx, project, names.DATABASE_GROUPS, DatabaseGroup, page_size=page_size, page_token=page_token
        )

    async def get_database_group(
        self,
        ctx: CallContext,
        name: str,
        view: DatabaseGroupView = DatabaseGroupView.BASIC,
    ) -> DatabaseGroup:
        # FULL materializes matched/unmatched databases; BASIC leaves them unset.
        view = DatabaseGroupView(view)
        return await self._get(ctx, name, names.DATABASE_GROUPS, DatabaseGroup, params={"view": view.value})

    async def create_database_group(self, ctx: CallContext, group: DatabaseGroup) -> DatabaseGroup:
        return await self._create(ctx, group, names.DATABASE_GROUPS, DatabaseGroup)

    async def update_database_group(
        self, ctx: CallContext, patch: DatabaseGroupPatch, mask: MaskLike = None
    ) -> DatabaseGroup:
        return await self._update(ctx, patch, mask, names.DATABASE_GROUPS, DatabaseGroup)

    async def delete_database_group(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.DATABASE_GROUPS)
