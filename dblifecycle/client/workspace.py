from __future__ import annotations

from dblifecycle.client.base import ClientBase, MaskLike
from dblifecycle.client.context import CallContext
from dblifecycle.domain import names
from dblifecycle.domain.enums import SettingName
from dblifecycle.domain.models import (
    Environment,
    EnvironmentPatch,
    Group,
    GroupPatch,
    IamPolicy,
    Page,
    ReviewConfig,
    Risk,
    RiskPatch,
    Role,
    RolePatch,
    User,
    UserPatch,
)
from dblifecycle.domain.payloads import Setting, ensure_setting_value
from dblifecycle.providers.transport.base import TransportRequest
from dblifecycle.services.filters import UserFilter


class WorkspaceMixin(ClientBase):
    # Environments

    async def list_environments(
        self,
        ctx: CallContext,
        *,
        show_deleted: bool = False,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[Environment]:
        params = {"showDeleted": "true"} if show_deleted else None
        return await self._list(
            ctx, None, names.ENVIRONMENTS, Environment, page_size=page_size, page_token=page_token, params=params
        )

    async def get_environment(self, ctx: CallContext, name: str) -> Environment:
        return await self._get(ctx, name, names.ENVIRONMENTS, Environment)

    async def create_environment(self, ctx: CallContext, environment: Environment) -> Environment:
        return await self._create(ctx, environment, names.ENVIRONMENTS, Environment)

    async def update_environment(
        self, ctx: CallContext, patch: EnvironmentPatch, mask: MaskLike = None
    ) -> Environment:
        return await self._update(ctx, patch, mask, names.ENVIRONMENTS, Environment)

    async def delete_environment(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.ENVIRONMENTS)

    async def undelete_environment(self, ctx: CallContext, name: str) -> Environment:
        return await self._undelete(ctx, name, names.ENVIRONMENTS, Environment)

    # Settings

    async def list_settings(
        self, ctx: CallContext, *, page_size: int | None = None, page_token: str | None = None
    ) -> Page[Setting]:
        return await self._list(ctx, None, names.SETTINGS, Setting, page_size=page_size, page_token=page_token)

    async def get_setting(self, ctx: CallContext, name: SettingName | str) -> Setting:
        if isinstance(name, SettingName):
            name = names.setting_name(name)
        return await self._get(ctx, name, names.SETTINGS, Setting)

    async def upsert_setting(self, ctx: CallContext, setting: Setting, mask: MaskLike = None) -> Setting:
        ensure_setting_value(setting)
        return await self._upsert(ctx, setting, mask, names.SETTINGS)

    # Review configs

    async def list_review_configs(
        self, ctx: CallContext, *, page_size: int | None = None, page_token: str | None = None
    ) -> Page[ReviewConfig]:
        return await self._list(
            ctx, None, names.REVIEW_CONFIGS, ReviewConfig, page_size=page_size, page_token=page_token
        )

    async def get_review_config(self, ctx: CallContext, name: str) -> ReviewConfig:
        return await self._get(ctx, name, names.REVIEW_CONFIGS, ReviewConfig)

    async def upsert_review_config(
        self, ctx: CallContext, config: ReviewConfig, mask: MaskLike = None
    ) -> ReviewConfig:
        return await self._upsert(ctx, config, mask, names.REVIEW_CONFIGS)

    # Risks

    async def list_risks(
        self, ctx: CallContext, *, page_size: int | None = None, page_token: str | None = None
    ) -> Page[Risk]:
        return await self._list(ctx, None, names.RISKS, Risk, page_size=page_size, page_token=page_token)

    async def get_risk(self, ctx: CallContext, name: str) -> Risk:
        return await self._get(ctx, name, names.RISKS, Risk)

    async def create_risk(self, ctx: CallContext, risk: Risk) -> Risk:
        return await self._create(ctx, risk, names.RISKS, Risk)

    async def update_risk(self, ctx: CallContext, patch: RiskPatch, mask: MaskLike = None) -> Risk:
        return await self._update(ctx, patch, mask, names.RISKS, Risk)

    async def delete_risk(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.RISKS)

    # Workspace IAM roles

    async def list_roles(
        self, ctx: CallContext, *, page_size: int | None = None, page_token: str | None = None
    ) -> Page[Role]:
        return await self._list(ctx, None, names.ROLES, Role, page_size=page_size, page_token=page_token)

    async def get_role(self, ctx: CallContext, name: str) -> Role:
        return await self._get(ctx, name, names.ROLES, Role)

    async def create_role(self, ctx: CallContext, role: Role) -> Role:
        return await self._create(ctx, role, names.ROLES, Role)

    async def update_role(self, ctx: CallContext, patch: RolePatch, mask: MaskLike = None) -> Role:
        return await self._update(ctx, patch, mask, names.ROLES, Role)

    async def delete_role(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.ROLES)

    # Groups

    async def list_groups(
        self, ctx: CallContext, *, page_size: int | None = None, page_token: str | None = None
    ) -> Page[Group]:
        return await self._list(ctx, None, names.GROUPS, Group, page_size=page_size, page_token=page_token)

    async def get_group(self, ctx: CallContext, name: str) -> Group:
        return await self._get(ctx, name, names.GROUPS, Group)

    async def create_group(self, ctx: CallContext, group: Group) -> Group:
        return await self._create(ctx, group, names.GROUPS, Group)

    async def update_group(self, ctx: CallContext, patch: GroupPatch, mask: MaskLike = None) -> Group:
        return await self._update(ctx, patch, mask, names.GROUPS, Group)

    async def delete_group(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.GROUPS)

    # Users

    async def list_users(
        self,
        ctx: CallContext,
        filter: UserFilter | None = None,
        *,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[User]:
        return await self._list(
            ctx, None, names.USERS, User, filter=filter, page_size=page_size, page_token=page_token
        )

    async def get_user(self, ctx: CallContext, name: str) -> User:
        return await self._get(ctx, name, names.USERS, User)

    async def create_user(self, ctx: CallContext, user: User) -> User:
        return await self._create(ctx, user, names.USERS, User)

    async def update_user(self, ctx: CallContext, patch: UserPatch, mask: MaskLike = None) -> User:
        return await self._update(ctx, patch, mask, names.USERS, User)

    async def delete_user(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.USERS)

    async def undelete_user(self, ctx: CallContext, name: str) -> User:
        return await self._undelete(ctx, name, names.USERS, User)

    # Workspace IAM policy

    async def get_workspace_iam_policy(self, ctx: CallContext) -> IamPolicy:
        payload = await self._invoke(ctx, TransportRequest("GET", f"{names.WORKSPACE}:getIamPolicy"))
        return self._decode(IamPolicy.from_wire, payload)

    async def set_workspace_iam_policy(self, ctx: CallContext, policy: IamPolicy) -> IamPolicy:
        # Full replacement of the bindings list.
        request = TransportRequest("POST", f"{names.WORKSPACE}:setIamPolicy", body={"policy": policy.to_wire()})
        return self._decode(IamPolicy.from_wire, await self._invoke(ctx, request))
