from __future__ import annotations

from dblifecycle.client.base import ClientBase, MaskLike
from dblifecycle.client.context import CallContext
from dblifecycle.core.errors import InternalError
from dblifecycle.domain import names
from dblifecycle.domain.enums import PolicyType
from dblifecycle.domain.expr import Expr
from dblifecycle.domain.models import Page
from dblifecycle.domain.payloads import Policy, ensure_policy_payload
from dblifecycle.providers.transport.base import TransportRequest
from dblifecycle.services import cel


PARSE_EXPRESSION_PATH = "cel:parseExpression"


class PolicyMixin(ClientBase):
    async def list_policies(
        self,
        ctx: CallContext,
        parent: str | None = None,
        *,
        policy_type: PolicyType | None = None,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Page[Policy]:
        params = {"policyType": PolicyType(policy_type).value} if policy_type else None
        return await self._list(
            ctx, parent, names.POLICIES, Policy, page_size=page_size, page_token=page_token, params=params
        )

    async def get_policy(self, ctx: CallContext, name: str) -> Policy:
        return await self._get(ctx, name, names.POLICIES, Policy)

    async def upsert_policy(self, ctx: CallContext, policy: Policy, mask: MaskLike = None) -> Policy:
        """Create the policy or replace its payload.

        The payload and type are always replaced; ``inherit_from_parent`` and
        ``enforce`` only change when named in ``mask``.
        """
        ensure_policy_payload(policy)
        return await self._upsert(ctx, policy, mask, names.POLICIES)

    async def delete_policy(self, ctx: CallContext, name: str) -> None:
        await self._delete(ctx, name, names.POLICIES)

    async def parse_expression(self, ctx: CallContext, expression: str) -> Expr:
        # Size and emptiness are checked locally; parsing happens server-side.
        if not isinstance(expression, str) or not expression.strip() or len(expression) > cel.MAX_EXPRESSION_LENGTH:
            cel.parse_expression(expression)
        payload = await self._invoke(
            ctx, TransportRequest("POST", PARSE_EXPRESSION_PATH, body={"expression": expression})
        )
        raw = payload.get("expression")
        if not isinstance(raw, dict):
            raise InternalError("parseExpression response carried no expression tree")
        return self._decode(Expr.model_validate, raw)
