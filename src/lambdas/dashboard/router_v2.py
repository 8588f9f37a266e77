"""Dashboard API v2 Router.

Wires the role service functions to FastAPI endpoints.
This router is included by handler.py to expose the endpoints.

Endpoint Groups:
- /api/v2/roles/* - Current role state and role switching
- /api/v2/test-mode - Test-mode status, enable and disable
- /api/v2/users/me - Profile creation for the requester
- /api/v2/admin/users/{user_id}/roles/* - Grant administration (admin only)

Every endpoint resolves role state server-side through the services on
``app.state.role_services``. Role and test-mode cookies set here are
hints for the client and the route guard; they are never trusted.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.lambdas.dashboard import roles as role_service
from src.lambdas.dashboard import testmode as testmode_service
from src.lambdas.dashboard.roles import ChangeRoleRequest, GrantRoleRequest
from src.lambdas.dashboard.testmode import TestModeEnableRequest
from src.lambdas.shared.events.role_event_bus import RoleTopic
from src.lambdas.shared.middleware import require_role, require_user_id
from src.lambdas.shared.utils.cookie_helpers import (
    ROLE_HINT_COOKIE,
    TEST_MODE_HINT_COOKIE,
    make_clear_cookie,
    make_set_cookie,
)

logger = logging.getLogger(__name__)

# Create routers
roles_router = APIRouter(prefix="/api/v2/roles", tags=["roles"])
test_mode_router = APIRouter(prefix="/api/v2/test-mode", tags=["test-mode"])
users_router = APIRouter(prefix="/api/v2/users", tags=["users"])
admin_router = APIRouter(prefix="/api/v2/admin", tags=["admin"])


def get_role_services(request: Request):
    """Dependency returning the RoleServices bundle built at startup."""
    return request.app.state.role_services


def get_authenticated_user_id(request: Request) -> str:
    """Dependency returning the requester's user id.

    Raises:
        UnauthenticatedError: No identity on the request (401)
    """
    return require_user_id(request.headers)


def _with_hints(response: JSONResponse, role: str | None, test_mode: bool | None) -> JSONResponse:
    if role is not None:
        response.headers.append("set-cookie", make_set_cookie(ROLE_HINT_COOKIE, role))
    if test_mode is True:
        response.headers.append("set-cookie", make_set_cookie(TEST_MODE_HINT_COOKIE, "true"))
    elif test_mode is False:
        response.headers.append("set-cookie", make_clear_cookie(TEST_MODE_HINT_COOKIE))
    return response


# ===================================================================
# Roles Endpoints
# ===================================================================


@roles_router.get("")
async def get_roles(
    user_id: str = Depends(get_authenticated_user_id),
    services=Depends(get_role_services),
):
    """Current role, available roles, test-mode flag and permissions."""
    result = role_service.get_roles(services.resolver, user_id, services.registry)
    response = JSONResponse(result.model_dump(by_alias=True))
    return _with_hints(response, result.current_role, result.is_test_mode)


@roles_router.post("/current")
async def change_role(
    body: ChangeRoleRequest,
    user_id: str = Depends(get_authenticated_user_id),
    services=Depends(get_role_services),
):
    """Switch the requester's current role.

    Returns 400 for an unknown role, 403 when the role is not available,
    404 when the requester has no profile.
    """
    event = services.authorizer.change_role(user_id, body.role)
    response = JSONResponse(
        {
            "currentRole": event.to_role.value,
            "availableRoles": [role.value for role in event.available_roles],
        }
    )
    return _with_hints(response, event.to_role.value, None)


@roles_router.get("/available")
async def get_available_roles(
    user_id: str = Depends(get_authenticated_user_id),
    services=Depends(get_role_services),
):
    """Available roles for the role switcher, served from RoleCache when fresh.

    For display only; authorization always re-resolves.
    """
    cached = services.cache.get(user_id)
    if cached is not None:
        return JSONResponse({"availableRoles": [r.value for r in cached], "cached": True})

    resolved = services.resolver.resolve(user_id)
    services.cache.set(user_id, resolved.available_roles)
    return JSONResponse(
        {"availableRoles": [r.value for r in resolved.available_roles], "cached": False}
    )


# ===================================================================
# Test Mode Endpoints
# ===================================================================


@test_mode_router.get("")
async def get_test_mode(
    user_id: str = Depends(get_authenticated_user_id),
    services=Depends(get_role_services),
):
    """Live test-mode status for the requester."""
    status = testmode_service.get_testmode_status(services.test_mode, user_id)
    return JSONResponse(status.model_dump(by_alias=True))


@test_mode_router.post("")
async def enable_test_mode(
    body: TestModeEnableRequest,
    user_id: str = Depends(get_authenticated_user_id),
    services=Depends(get_role_services),
):
    """Start a time-bounded test-mode session. Rejected in production."""
    session = services.test_mode.enable(
        user_id,
        duration_seconds=body.duration_seconds,
        initial_role=body.initial_role,
        all_roles=body.all_roles,
        roles=body.roles,
        bypass_api_calls=body.bypass_api_calls,
    )
    result = testmode_service.session_response(session, services.test_mode)
    response = JSONResponse(result.model_dump(by_alias=True), status_code=201)
    return _with_hints(response, session.initial_role.value, True)


@test_mode_router.delete("")
async def disable_test_mode(
    user_id: str = Depends(get_authenticated_user_id),
    services=Depends(get_role_services),
):
    """End the requester's test-mode session. Idempotent."""
    services.test_mode.disable(user_id)
    response = JSONResponse({})
    response.headers.append("set-cookie", make_clear_cookie(ROLE_HINT_COOKIE))
    return _with_hints(response, None, False)


# ===================================================================
# Users Endpoints
# ===================================================================


@users_router.post("/me")
async def create_profile(
    user_id: str = Depends(get_authenticated_user_id),
    services=Depends(get_role_services),
):
    """Create the requester's profile (viewer only). Idempotent."""
    services.store.create_user(user_id)
    result = role_service.get_roles(services.resolver, user_id, services.registry)
    response = JSONResponse(result.model_dump(by_alias=True), status_code=201)
    return _with_hints(response, result.current_role, None)


# ===================================================================
# Admin Endpoints
# ===================================================================


@admin_router.get("/users/{user_id}/roles")
@require_role("admin")
async def list_user_roles(request: Request, user_id: str):
    """Grant rows and flag drift for one user."""
    services = request.app.state.role_services
    drift = services.store.detect_drift(user_id)
    grants = sorted(services.store.grants_for(user_id), key=lambda g: g.role.value)
    return JSONResponse(
        {
            "userId": user_id,
            "grants": [
                {
                    "role": g.role.value,
                    "active": g.active,
                    "isTestGrant": g.is_test_grant,
                    "updatedAt": g.updated_at.isoformat() if g.updated_at else None,
                }
                for g in grants
            ],
            "drift": {
                "fixedFlags": drift.fixed_flags,
                "createdViewerGrant": drift.created_viewer_grant,
            },
        }
    )


@admin_router.post("/users/{user_id}/roles")
@require_role("admin")
async def grant_user_role(request: Request, user_id: str, body: GrantRoleRequest):
    """Give a user a permanent grant for a role."""
    services = request.app.state.role_services
    actor_id = require_user_id(request.headers)
    role = role_service.grant_role(
        services.store, services.bus, actor_id, user_id, body.role, services.registry
    )
    return JSONResponse({"userId": user_id, "role": role.value, "active": True}, status_code=201)


@admin_router.delete("/users/{user_id}/roles/{role}")
@require_role("admin")
async def revoke_user_role(request: Request, user_id: str, role: str):
    """Deactivate a user's grant. viewer cannot be revoked (400)."""
    services = request.app.state.role_services
    actor_id = require_user_id(request.headers)
    revoked = role_service.revoke_role(
        services.store, services.bus, actor_id, user_id, role, services.registry
    )
    return JSONResponse({"userId": user_id, "role": revoked.value, "active": False})


@admin_router.post("/users/{user_id}/roles/reconcile")
@require_role("admin")
async def reconcile_user_roles(request: Request, user_id: str):
    """Rewrite drifted profile flags from grant rows."""
    services = request.app.state.role_services
    report = services.store.reconcile(user_id)
    if report.has_drift:
        services.bus.publish(
            RoleTopic.ROLES_UPDATED, {"userId": user_id, "action": "reconciled"}
        )
    return JSONResponse(
        {
            "userId": user_id,
            "fixedFlags": report.fixed_flags,
            "createdViewerGrant": report.created_viewer_grant,
            "applied": report.applied,
        }
    )


def include_routers(app):
    """Include all v2 routers in the FastAPI app."""
    app.include_router(roles_router)
    app.include_router(test_mode_router)
    app.include_router(users_router)
    app.include_router(admin_router)
