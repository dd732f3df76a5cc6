from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Header, Request

from dblifecycle.apps.sandbox.response import success_response
from dblifecycle.apps.sandbox.state import SandboxState
from dblifecycle.core.errors import InvalidArgumentError, NotFoundError
from dblifecycle.domain import names
from dblifecycle.domain.models import LoginRequest


router = APIRouter(tags=["sandbox"])

_GET_VERBS = frozenset({"getIamPolicy"})
_POST_VERBS = frozenset({"undelete", "sync", "setIamPolicy", "batchUpdate", "parseExpression"})


def get_state(request: Request) -> SandboxState:
    return request.app.state.sandbox


def require_caller(
    request: Request,
    authorization: str | None = Header(default=None),
) -> str:
    # Resolve the bearer token to the calling user's resource name.
    scheme, _, token = (authorization or "").partition(" ")
    caller = get_state(request).authenticate(token if scheme.lower() == "bearer" else None)
    request.state.caller = caller
    return caller


async def _json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise InvalidArgumentError("Request body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return body


def _split(path: str) -> tuple[list[str], str | None]:
    resource, sep, verb = path.partition(":")
    segments = [segment for segment in resource.split("/") if segment]
    if not segments:
        raise NotFoundError(f"Unknown path: /{path}")
    return segments, (verb if sep else None)


@router.post("/auth/login")
async def login(request: Request, payload: LoginRequest) -> dict[str, Any]:
    auth = get_state(request).login(payload)
    return success_response(request=request, data=auth.to_wire())


@router.get("/{path:path}")
async def get_resource(request: Request, path: str, _caller: str = Depends(require_caller)) -> dict[str, Any]:
    state = get_state(request)
    params = dict(request.query_params)
    segments, verb = _split(path)
    resource = "/".join(segments)
    if verb is not None:
        if verb not in _GET_VERBS:
            raise NotFoundError(f"Unknown method: GET :{verb}")
        data = state.get_iam_policy(resource)
    elif len(segments) % 2:
        parent = "/".join(segments[:-1]) or None
        data = state.list_collection(parent, segments[-1], params)
    else:
        data = state.get(resource, params)
    return success_response(request=request, data=data)


@router.post("/{path:path}")
async def post_resource(request: Request, path: str, _caller: str = Depends(require_caller)) -> dict[str, Any]:
    state = get_state(request)
    params = dict(request.query_params)
    body = await _json_body(request)
    segments, verb = _split(path)
    resource = "/".join(segments)
    if verb is None:
        if not len(segments) % 2:
            raise NotFoundError(f"Cannot POST to a resource: /{path}")
        parent = "/".join(segments[:-1]) or None
        data = state.create(parent, segments[-1], params, body)
    elif verb not in _POST_VERBS:
        raise NotFoundError(f"Unknown method: POST :{verb}")
    elif verb == "undelete":
        data = state.undelete(resource)
    elif verb == "sync":
        data = state.sync_instance(resource)
    elif verb == "setIamPolicy":
        data = state.set_iam_policy(resource, body.get("policy") or {})
    elif verb == "batchUpdate":
        if resource != f"{names.INSTANCES}/{names.ANY_ID}/{names.DATABASES}":
            raise NotFoundError(f"batchUpdate is not supported on {resource}")
        data = state.batch_update_databases(list(body.get("requests") or []))
    else:
        if resource != "cel":
            raise NotFoundError(f"parseExpression is not supported on {resource}")
        data = state.parse_expression(body.get("expression"))
    return success_response(request=request, data=data)


@router.patch("/{path:path}")
async def patch_resource(request: Request, path: str, _caller: str = Depends(require_caller)) -> dict[str, Any]:
    state = get_state(request)
    params = dict(request.query_params)
    body = await _json_body(request)
    segments, verb = _split(path)
    if verb is not None or len(segments) % 2:
        raise NotFoundError(f"Cannot PATCH /{path}")
    name = "/".join(segments)
    if names.parse_name(name).collection in (names.POLICIES, names.SETTINGS, names.REVIEW_CONFIGS):
        data = state.upsert(name, params, body)
    else:
        data = state.update(name, params, body)
    return success_response(request=request, data=data)


@router.delete("/{path:path}")
async def delete_resource(request: Request, path: str, _caller: str = Depends(require_caller)) -> dict[str, Any]:
    segments, verb = _split(path)
    if verb is not None or len(segments) % 2:
        raise NotFoundError(f"Cannot DELETE /{path}")
    data = get_state(request).delete("/".join(segments))
    return success_response(request=request, data=data)
