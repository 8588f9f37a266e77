"""Test-mode request and response shapes for the dashboard API.

Session lifecycle lives in shared.auth.testmode.TestModeSessionManager;
this module only translates between it and the HTTP payloads.
"""

from pydantic import BaseModel, ConfigDict, Field

from src.lambdas.shared.auth.testmode import TestModeSessionManager
from src.lambdas.shared.models.testmode_session import TestModeSession


class TestModeEnableRequest(BaseModel):
    """Body of POST /api/v2/test-mode."""

    __test__ = False

    model_config = ConfigDict(populate_by_name=True)

    duration_seconds: int | None = Field(None, alias="durationSeconds")
    initial_role: str = Field("viewer", alias="initialRole", max_length=64)
    all_roles: bool = Field(True, alias="allRoles")
    roles: list[str] | None = None
    bypass_api_calls: bool = Field(False, alias="bypassApiCalls")


class TestModeSessionResponse(BaseModel):
    """A stored session, as returned by enable."""

    __test__ = False

    user_id: str = Field(..., serialization_alias="userId")
    active: bool
    created_at: str = Field(..., serialization_alias="createdAt")
    expires_at: str = Field(..., serialization_alias="expiresAt")
    initial_role: str = Field(..., serialization_alias="initialRole")
    bypass_api_calls: bool = Field(..., serialization_alias="bypassApiCalls")
    granted_roles: list[str] = Field(..., serialization_alias="grantedRoles")


class TestModeStatusResponse(BaseModel):
    """Body of GET /api/v2/test-mode."""

    __test__ = False

    is_active: bool = Field(..., serialization_alias="isActive")
    expires_at: str | None = Field(None, serialization_alias="expiresAt")
    time_remaining_seconds: int | None = Field(None, serialization_alias="timeRemainingSeconds")
    granted_roles: list[str] = Field(default_factory=list, serialization_alias="grantedRoles")


def session_response(session: TestModeSession, manager: TestModeSessionManager) -> TestModeSessionResponse:
    return TestModeSessionResponse(
        user_id=session.user_id,
        active=session.active,
        created_at=session.created_at.isoformat(),
        expires_at=session.expires_at.isoformat(),
        initial_role=session.initial_role.value,
        bypass_api_calls=session.bypass_api_calls,
        granted_roles=[r.value for r in manager.ordered_roles(session.granted_roles)],
    )


def get_testmode_status(manager: TestModeSessionManager, user_id: str) -> TestModeStatusResponse:
    """Live-session status; an expired or absent session reports inactive."""
    session = manager.active_session(user_id)
    if session is None:
        return TestModeStatusResponse(is_active=False)

    remaining = manager.time_remaining(user_id)
    return TestModeStatusResponse(
        is_active=True,
        expires_at=session.expires_at.isoformat(),
        time_remaining_seconds=max(0, int(remaining.total_seconds())) if remaining else 0,
        granted_roles=[r.value for r in manager.ordered_roles(session.granted_roles)],
    )
