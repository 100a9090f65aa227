"""Dashboard application factory.

Creates a FastAPI app wired to a billing store, a reconciler, a usage
meter, and (optionally) a checkout manager.

Usage::

    from caremeter.dashboard import create_app_from_config

    app = create_app_from_config(BillingConfig.from_env(), authenticate=my_auth)
    # uvicorn.run(app, host="0.0.0.0", port=8000)

Requires the ``dashboard`` extra::

    pip install caremeter[dashboard]
"""
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

try:
    from fastapi import FastAPI, Request
    from fastapi.exceptions import RequestValidationError
    from fastapi.responses import JSONResponse
except ImportError as _err:  # pragma: no cover
    raise ImportError(
        "FastAPI is required for caremeter.dashboard. "
        "Install it with: pip install caremeter[dashboard]"
    ) from _err

import structlog

from caremeter.__version__ import __version__
from caremeter.billing.checkout import CheckoutManager
from caremeter.billing.meter import UsageMeter
from caremeter.billing.reconciliation import Reconciler
from caremeter.core.config import BillingConfig
from caremeter.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CaremeterError,
    ConfigurationError,
    DataStoreError,
    NotFoundError,
    SignatureError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from caremeter.plans.catalog import PlanCatalog
from caremeter.provider.base import PaymentProvider, ProviderConfig
from caremeter.provider.stripe_client import StripeClient
from caremeter.store.base import BillingStore
from caremeter.store.supabase import SupabaseBillingStore
from caremeter.utils.logging import configure_logging

logger = structlog.get_logger(__name__)

Authenticator = Callable[[Request], Awaitable[str | None]]

# Most specific first.
_DEFAULT_STATUS: tuple[tuple[type[CaremeterError], int], ...] = (
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (ValidationError, 400),
    (SignatureError, 400),
    (NotFoundError, 404),
    (UpstreamTimeoutError, 504),
    (UpstreamError, 502),
    (DataStoreError, 500),
    (ConfigurationError, 500),
)


def status_for(exc: CaremeterError) -> int:
    """HTTP status for *exc*: its explicit status, else the type default."""
    if exc.status_code is not None:
        return exc.status_code
    for exc_type, status in _DEFAULT_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


async def _caremeter_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, CaremeterError)  # noqa: S101
    status = status_for(exc)
    log = logger.error if status >= 500 else logger.info
    log(
        "request.failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        code=exc.code,
        status=status,
    )
    headers = {"Retry-After": str(int(exc.retry_after))} if exc.retry_after else None
    return JSONResponse(
        content={"error": str(exc), "code": exc.code},
        status_code=status,
        headers=headers,
    )


async def _request_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        content={"error": "Invalid request body", "code": "invalid_body"},
        status_code=400,
    )


def create_dashboard_app(
    *,
    store: BillingStore,
    reconciler: Reconciler,
    usage_meter: UsageMeter,
    authenticate: Authenticator,
    checkout_manager: CheckoutManager | None = None,
    webhook_secret: str | None = None,
    webhook_tolerance: int = 300,
    resources: tuple[Any, ...] = (),
) -> FastAPI:
    """Create a FastAPI application exposing the billing endpoints.

    Args:
        store: Billing datastore (read for the access endpoint).
        reconciler: Applies provider state on webhook and sync requests.
        usage_meter: Computes usage snapshots.
        authenticate: Async callable returning the caller's account id,
            or ``None`` when the request is unauthenticated.
        checkout_manager: Optional :class:`CheckoutManager` for checkout
            and portal endpoints.
        webhook_secret: Provider webhook signing secret.
        webhook_tolerance: Maximum signature age in seconds.
        resources: Async context managers entered for the app's lifetime
            (e.g. the store and provider clients).

    Returns:
        A configured :class:`FastAPI` application.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for resource in resources:
                await stack.enter_async_context(resource)
            yield

    app = FastAPI(title="Caremeter Billing", version=__version__, lifespan=lifespan)

    # Store references on app.state for router access.
    app.state.store = store
    app.state.reconciler = reconciler
    app.state.usage_meter = usage_meter
    app.state.authenticate = authenticate
    app.state.checkout_manager = checkout_manager
    app.state.webhook_secret = webhook_secret
    app.state.webhook_tolerance = webhook_tolerance

    app.add_exception_handler(CaremeterError, _caremeter_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    # Import routers lazily to avoid circular imports.
    from caremeter.dashboard.routers.billing_router import router as billing_router
    from caremeter.dashboard.routers.health import router as health_router
    from caremeter.dashboard.routers.webhooks_router import router as webhooks_router

    app.include_router(health_router)
    app.include_router(billing_router)
    app.include_router(webhooks_router)

    logger.info("dashboard_app_created", routers=3, checkout=checkout_manager is not None)
    return app


def create_app_from_config(
    config: BillingConfig,
    *,
    authenticate: Authenticator,
    store: BillingStore | None = None,
    provider: PaymentProvider | None = None,
) -> FastAPI:
    """Build every billing component from *config* and return the app.

    *store* and *provider* default to :class:`SupabaseBillingStore` and
    :class:`StripeClient`; both are opened on startup and closed on
    shutdown.

    Raises:
        ConfigurationError: If a default component lacks its settings.
    """
    configure_logging(config.log_level, json=config.log_json)

    if store is None:
        if not config.supabase_url or not config.supabase_key:
            raise ConfigurationError("Supabase URL and key are required")
        store = SupabaseBillingStore(
            config.supabase_url, config.supabase_key, timeout=config.provider_timeout
        )
    if provider is None:
        provider = StripeClient(
            ProviderConfig(
                api_key=config.stripe_api_key,
                base_url=config.stripe_base_url,
                timeout=config.provider_timeout,
            )
        )

    catalog = PlanCatalog(price_ids=config.price_ids)
    reconciler = Reconciler(
        store, provider, catalog, provider_timeout=config.provider_timeout
    )
    meter = UsageMeter(store, catalog, rounding=config.rounding_policy)
    checkout = CheckoutManager(
        store,
        provider,
        catalog,
        app_url=config.app_url,
        trial_period_days=config.trial_period_days,
        provider_timeout=config.provider_timeout,
    )
    return create_dashboard_app(
        store=store,
        reconciler=reconciler,
        usage_meter=meter,
        authenticate=authenticate,
        checkout_manager=checkout,
        webhook_secret=config.webhook_secret,
        webhook_tolerance=config.webhook_tolerance,
        resources=(store, provider),
    )
