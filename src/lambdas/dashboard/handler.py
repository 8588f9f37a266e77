"""
Dashboard Lambda Handler
========================

FastAPI application serving the ad-marketplace dashboard role API and
guarding dashboard page routes by role.

For On-Call Engineers:
    If dashboard pages redirect unexpectedly:
    1. Check the route table (ROUTE_ROLES_PATH or bundled route_roles.json)
    2. GET /api/v2/roles as the affected user to see the resolved role
    3. Check for a stale test-mode session at PK=USER#{id}, SK=TESTMODE

    If all role endpoints return 500 (ROLE_005):
    1. Verify DATABASE_TABLE exists and Lambda has DynamoDB permissions
    2. Check CloudWatch for "Role store operation failed" with error_type

For Developers:
    - Uses Mangum adapter for Lambda Function URL compatibility
    - build_services() is the composition root: exactly one RoleEventBus
      is created there and handed to every publisher and subscriber
    - create_app(services) builds an app around an existing bundle (tests)

X-Ray Tracing:
    X-Ray is enabled for distributed tracing across all Lambda invocations.
"""

# X-Ray must be imported and patched before other imports
from aws_xray_sdk.core import patch_all  # noqa: E402

patch_all()

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum

from src.lambdas.dashboard.roles import RoleChangeAuthorizer
from src.lambdas.dashboard.router_v2 import include_routers
from src.lambdas.shared.auth.registry import RoleRegistry
from src.lambdas.shared.auth.roles import RoleResolver
from src.lambdas.shared.auth.testmode import TestModeSessionManager
from src.lambdas.shared.cache.role_cache import RoleCache
from src.lambdas.shared.dynamodb import get_table
from src.lambdas.shared.errors.role_errors import RoleError, role_error_response
from src.lambdas.shared.events.role_event_bus import RoleEventBus
from src.lambdas.shared.logging_utils import sanitize_for_log
from src.lambdas.shared.middleware.route_guard import (
    RouteAccessGuard,
    RouteGuardMiddleware,
    RouteTable,
)
from src.lambdas.shared.role_store import DynamoDBRoleStore, RoleStore
from src.lambdas.shared.utils.clock import Clock, utc_now

# Structured logging
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


@dataclass
class RoleServices:
    """Every role component, wired around one event bus."""

    environment: str
    registry: RoleRegistry
    bus: RoleEventBus
    store: RoleStore
    test_mode: TestModeSessionManager
    resolver: RoleResolver
    authorizer: RoleChangeAuthorizer
    cache: RoleCache
    route_guard: RouteAccessGuard


def build_services(
    table: Any,
    environment: str,
    registry: RoleRegistry | None = None,
    clock: Clock = utc_now,
    route_table_path: str | Path | None = None,
    store: RoleStore | None = None,
) -> RoleServices:
    """Composition root for the role subsystem.

    Args:
        table: DynamoDB Table resource holding profiles, grants and sessions
        environment: Deployment tier; production makes test mode inert
        registry: Role registry (default: from ADMIN_RESERVED_ROLES)
        clock: Time source shared by store, test mode and authorizer
        route_table_path: Override for ROUTE_ROLES_PATH
        store: Alternative RoleStore implementation

    Raises:
        InvalidRoleError: Unknown role names in config or the route table
    """
    registry = registry or RoleRegistry.from_env()
    bus = RoleEventBus()
    store = store or DynamoDBRoleStore(table, clock=clock)
    test_mode = TestModeSessionManager(
        table=table,
        store=store,
        bus=bus,
        registry=registry,
        environment=environment,
        clock=clock,
    )
    resolver = RoleResolver(store, test_mode, registry)
    authorizer = RoleChangeAuthorizer(store, resolver, bus, registry, clock=clock)

    cache = RoleCache()
    cache.bind(bus)

    route_guard = RouteAccessGuard(
        table=RouteTable.load(registry, route_table_path),
        resolver=resolver,
        test_mode=test_mode,
        registry=registry,
    )
    return RoleServices(
        environment=environment,
        registry=registry,
        bus=bus,
        store=store,
        test_mode=test_mode,
        resolver=resolver,
        authorizer=authorizer,
        cache=cache,
        route_guard=route_guard,
    )


def services_from_env() -> RoleServices:
    """Build services from DATABASE_TABLE and ENVIRONMENT.

    CRITICAL: both must be set - no defaults to prevent wrong-environment
    data corruption.
    """
    table_name = os.environ.get("DATABASE_TABLE") or os.environ["DYNAMODB_TABLE"]
    environment = os.environ["ENVIRONMENT"]
    return build_services(get_table(table_name), environment)


def get_cors_origins(environment: str) -> list[str]:
    """
    Get CORS allowed origins from environment.

    Returns localhost for dev/test, specific domains for production.
    Production REQUIRES explicit CORS_ORIGINS configuration.
    """
    cors_origins = os.environ.get("CORS_ORIGINS", "")
    if cors_origins:
        return [origin.strip() for origin in cors_origins.split(",")]

    if environment in ("dev", "test", "preprod"):
        return ["http://localhost:3000", "http://127.0.0.1:3000"]

    logger.error(
        "CORS_ORIGINS not configured for production - dashboard will reject cross-origin requests",
        extra={"environment": sanitize_for_log(environment)},
    )
    return []


async def role_error_handler(request: Request, exc: RoleError) -> JSONResponse:
    """Render any RoleError as {"error": {"code", "message"}} with its status."""
    logger.debug(
        "Role error response",
        extra={
            "path": sanitize_for_log(request.url.path),
            "code": exc.code.value,
            "status_code": exc.status_code,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=role_error_response(exc))


def create_app(services: RoleServices) -> FastAPI:
    """Build the FastAPI app around a RoleServices bundle."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Dashboard Lambda starting",
            extra={"environment": sanitize_for_log(services.environment)},
        )
        yield
        services.cache.unbind()
        logger.info("Dashboard Lambda shutting down")

    app = FastAPI(
        title="AdReach Dashboard",
        description="Role resolution and access control for the marketplace dashboard",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.role_services = services
    app.add_exception_handler(RoleError, role_error_handler)

    # Runs before any route handler on every request
    app.add_middleware(RouteGuardMiddleware)

    cors_origins = get_cors_origins(services.environment)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-User-ID"],
        )

    include_routers(app)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "environment": services.environment}

    return app


app = create_app(services_from_env())

# Mangum adapter for AWS Lambda
handler = Mangum(app, lifespan="off")


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda entry point.

    Wraps the FastAPI app with Mangum for Lambda Function URL compatibility.

    On-Call Note:
        If Lambda returns 500 errors:
        1. Check CloudWatch logs for detailed error
        2. Verify all environment variables are set
        3. Check IAM permissions for DynamoDB access
    """
    logger.info(
        "Dashboard Lambda invoked",
        extra={
            "path": sanitize_for_log(event.get("rawPath", event.get("path", "unknown"))),
            "method": event.get("requestContext", {})
            .get("http", {})
            .get("method", "unknown"),
        },
    )

    return handler(event, context)
