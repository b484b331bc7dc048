"""HTTP surface for checkout, gateway callbacks and order status."""

from contextlib import asynccontextmanager
from pathlib import Path
from time import perf_counter
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from stkpay.common.config import Settings, settings
from stkpay.common.db import Base, make_engine, make_session_factory
from stkpay.common.errors import NotFoundError, StkPayError, StoreError
from stkpay.common.logging import configure_logging, logger, trace_id_ctx
from stkpay.common.metrics import (
    checkout_requests_total,
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
)
from stkpay.common.startup import log_startup_config
from stkpay.common.tracing import current_trace_id, instrument_app, setup_tracing
from stkpay.services.checkout.schemas import (
    CheckoutRequest,
    OrderLookupResponse,
    OrderResponse,
    ProductResponse,
)
from stkpay.services.checkout.service import CheckoutService, ReconciliationService
from stkpay.services.checkout.store import OrderStore, ProductCatalog
from stkpay.services.gateway.client import DarajaClient

configure_logging()
if settings.tracing_enabled:
    setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_URL",
        "DARAJA_BASE_URL",
        "DARAJA_CONSUMER_KEY",
        "DARAJA_CONSUMER_SECRET",
        "DARAJA_BUSINESS_SHORT_CODE",
        "DARAJA_PASSKEY",
        "DARAJA_CALLBACK_URL",
        "MINIMUM_AMOUNT",
        "PORT",
    ],
)


class SinglePageFiles(StaticFiles):
    """Static assets from the frontend directory; unknown paths get `index.html`."""

    async def get_response(self, path: str, scope):
        try:
            response = await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404:
                raise
            response = None
        if response is None or response.status_code == 404:
            return await super().get_response("index.html", scope)
        return response


def create_app(
    app_settings: Settings = settings,
    session_factory=None,
    gateway: DarajaClient | None = None,
) -> FastAPI:
    """Wire store, gateway client and services into a FastAPI app.

    Tests pass their own `session_factory` and `gateway`; otherwise both are
    built from `app_settings` and released when the app shuts down.
    """

    engine = None
    if session_factory is None:
        engine = make_engine(app_settings.database_url)
        session_factory = make_session_factory(engine)
    if gateway is None:
        gateway = DarajaClient(
            app_settings.daraja_base_url,
            app_settings.daraja_consumer_key,
            app_settings.daraja_consumer_secret,
            timeout_seconds=app_settings.daraja_timeout_seconds,
            cache_token=app_settings.daraja_token_cache,
            timezone=app_settings.daraja_timezone,
            service_name=app_settings.service_name,
        )

    store = OrderStore(session_factory)
    catalog = ProductCatalog(session_factory)
    checkout_service = CheckoutService(
        store,
        gateway,
        business_short_code=app_settings.daraja_business_short_code,
        passkey=app_settings.daraja_passkey,
        callback_url=app_settings.daraja_callback_url,
        account_reference=app_settings.daraja_account_reference,
        transaction_desc=app_settings.daraja_transaction_desc,
        minimum_amount=app_settings.minimum_amount,
        max_attempts=app_settings.daraja_max_attempts,
        backoff_seconds=app_settings.daraja_backoff_seconds,
        service_name=app_settings.service_name,
    )
    reconciliation = ReconciliationService(store, service_name=app_settings.service_name)
    frontend_dir = Path(app_settings.frontend_dir)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Create schema if asked; close gateway client and engine on shutdown."""

        if engine is not None and app_settings.create_schema_on_startup:
            Base.metadata.create_all(engine)
        yield
        await gateway.aclose()
        if engine is not None:
            engine.dispose()

    app = FastAPI(title="StkPay Checkout", lifespan=lifespan)
    app.state.store = store
    app.state.checkout_service = checkout_service
    app.state.reconciliation = reconciliation
    if app_settings.tracing_enabled:
        instrument_app(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_credentials=True,
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Bind a trace id and record request count and latency for every HTTP call."""

        trace_id_ctx.set(request.headers.get("x-correlation-id") or current_trace_id() or str(uuid4()))
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=app_settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=app_settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        """Schema-invalid bodies get the same 400 shape as service validation errors."""

        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"success": False, "error": message})

    @app.get("/api/products")
    def list_products():
        """Catalog listing."""

        try:
            products = catalog.list_products()
        except StoreError as exc:
            logger.error("product_fetch_error error=%s", exc.__cause__)
            return JSONResponse(status_code=500, content={"error": exc.message})
        return [ProductResponse.from_product(p).model_dump() for p in products]

    @app.post("/api/checkout")
    async def checkout(req: CheckoutRequest):
        """Send an STK push to the payer's phone and record a pending order."""

        checkout_requests_total.labels(service=app_settings.service_name).inc()
        try:
            result = await checkout_service.checkout(req.phone, req.amount)
        except StoreError as exc:
            return JSONResponse(status_code=500, content={"success": False, "error": exc.message})
        except StkPayError as exc:
            logger.error("checkout_error error_type=%s error=%s", type(exc).__name__, exc.message)
            return JSONResponse(status_code=400, content={"success": False, "error": exc.message})
        data = result.gateway_response.model_dump(by_alias=True)
        data["orderId"] = result.order_id
        return {
            "success": True,
            "message": "Payment request sent. Please check your phone.",
            "data": data,
        }

    @app.post("/callback")
    async def callback(request: Request):
        """Gateway result notification; always acknowledged."""

        try:
            payload = await request.json()
        except ValueError:
            logger.warning("callback_body_not_json")
            payload = None
        reconciliation.handle_callback(payload)
        return {"received": True}

    @app.get("/api/debug/order/{checkout_request_id}")
    def debug_order(checkout_request_id: str):
        """Diagnostic lookup by gateway correlation id."""

        try:
            found, order = store.lookup_by_checkout_request_id(checkout_request_id)
        except StoreError as exc:
            return JSONResponse(status_code=500, content={"error": exc.message})
        body = OrderLookupResponse(
            found=found,
            order=OrderResponse.from_order(order) if order else None,
            checkout_request_id=checkout_request_id,
        )
        return body.model_dump(by_alias=True, mode="json")

    @app.get("/api/order/{order_id}")
    def get_order(order_id: str):
        """Current status for one order."""

        try:
            order = store.get(order_id)
        except NotFoundError as exc:
            return JSONResponse(status_code=404, content={"error": exc.message})
        except StoreError as exc:
            logger.error("order_fetch_error error=%s", exc.__cause__)
            return JSONResponse(status_code=500, content={"error": exc.message})
        return OrderResponse.from_order(order).model_dump(by_alias=True, mode="json")

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container liveness check."""

        return {"ok": True}

    if frontend_dir.is_dir():
        # Mounted last so every API route above takes precedence.
        app.mount("/", SinglePageFiles(directory=frontend_dir, html=True), name="frontend")
    else:
        logger.warning("frontend_dir_missing path=%s", frontend_dir)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
