import hmac
import logging
import time

from fastapi import APIRouter, Header, HTTPException, Request

from order_service.auth import CredentialVerifier, bearer, issue_token
from order_service.checkout import CheckoutOrchestrator
from order_service.clients import HttpCartClient, HttpCatalogClient
from order_service.config import Settings
from order_service.errors import AuthError, CheckoutError
from order_service.models import (
    ConfigRequest,
    OrderDetail,
    OrderHistory,
    OrderResponse,
    OrderSummary,
    ReconcileResponse,
)
from order_service.pricing import PriceResolver
from order_service.reconciliation import ReconciliationLog
from order_service.store import OrderStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _cart(request: Request):
    settings = _settings(request)
    return request.app.state.cart or HttpCartClient(
        settings.cart_url, settings.cart_timeout_s, settings.retry_backoff_s
    )


def _catalog(request: Request):
    settings = _settings(request)
    return request.app.state.catalog or HttpCatalogClient(
        settings.catalog_url, settings.catalog_timeout_s, settings.retry_backoff_s
    )


def _verifier(request: Request) -> CredentialVerifier:
    settings = _settings(request)
    return CredentialVerifier(settings.jwt_secret, settings.jwt_algorithm)


def _authenticate(request: Request, authorization: str | None) -> str:
    try:
        return _verifier(request).verify(authorization)
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.category) from exc


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.post("/config")
def set_config(config: ConfigRequest, request: Request) -> dict:
    settings = _settings(request).with_timeouts(config.cart_timeout_s, config.catalog_timeout_s)
    request.app.state.settings = settings
    return {
        "cart_timeout_s": settings.cart_timeout_s,
        "catalog_timeout_s": settings.catalog_timeout_s,
    }


@router.post("/orders", response_model=OrderResponse)
def place_order(
    request: Request,
    authorization: str | None = Header(default=None),
    idempotency_key: str | None = Header(default=None),
) -> OrderResponse:
    started = time.time()
    settings = _settings(request)
    orchestrator = CheckoutOrchestrator(
        verifier=_verifier(request),
        cart=_cart(request),
        resolver=PriceResolver(_catalog(request), settings.max_price_lookups),
        store=OrderStore(settings.db_path),
        reconciliation=ReconciliationLog(settings.db_path),
    )

    try:
        result = orchestrator.place_order(authorization, idempotency_key=idempotency_key)
    except CheckoutError as exc:
        # Only the category leaves the service; the detail is in the log.
        raise HTTPException(status_code=exc.status_code, detail=exc.category) from exc

    latency_ms = int((time.time() - started) * 1000)
    return OrderResponse.from_result(result, latency_ms)


@router.get("/orders", response_model=OrderHistory)
def list_orders(request: Request, authorization: str | None = Header(default=None)) -> OrderHistory:
    user_id = _authenticate(request, authorization)
    orders = OrderStore(_settings(request).db_path).list_for_user(user_id)
    return OrderHistory(
        orders=[OrderSummary(order_id=o.order_id, total=o.total, created_at=o.created_at) for o in orders]
    )


@router.get("/orders/{order_id}", response_model=OrderDetail)
def get_order(order_id: str, request: Request, authorization: str | None = Header(default=None)) -> OrderDetail:
    user_id = _authenticate(request, authorization)
    order = OrderStore(_settings(request).db_path).get(order_id)
    # Someone else's order is reported exactly like a missing one.
    if order is None or order.user_id != user_id:
        raise HTTPException(status_code=404, detail="not_found")
    return OrderDetail.from_order(order)


@router.post("/reconcile", response_model=ReconcileResponse)
def reconcile(request: Request, x_reconcile_token: str | None = Header(default=None)) -> ReconcileResponse:
    # Internal only; signs credentials on behalf of other users.
    settings = _settings(request)
    expected = (settings.reconcile_token or "").encode()
    given = (x_reconcile_token or "").encode()
    if not expected or not hmac.compare_digest(given, expected):
        raise HTTPException(status_code=403, detail="forbidden")
    log = ReconciliationLog(settings.db_path)
    outcome = log.retry_pending(_cart(request), lambda user_id: bearer(issue_token(user_id, settings)))
    logger.info("reconcile run: %s", outcome)
    return ReconcileResponse(**outcome)
