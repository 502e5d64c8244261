import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.config import settings
from core.errors import GatewayError

logger = logging.getLogger(__name__)


def _auth() -> tuple[str, str]:
    return settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET


def _read_session() -> requests.Session:
    # Reads are idempotent, so they get a single retry; writes never do
    session = requests.Session()
    retry = Retry(total=1, connect=1, read=1, status=1, backoff_factor=0.2,
                  status_forcelist=(502, 503, 504), allowed_methods=frozenset({"GET"}))
    session.mount("https://", HTTPAdapter(max_retries=retry))
    session.mount("http://", HTTPAdapter(max_retries=retry))
    return session


def to_minor_units(amount) -> int:
    """Razorpay expects amounts in paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_order(amount: int, currency: str, receipt: str, notes: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Create a remote order. ``amount`` is already in minor units.

    Returns the gateway's order object (``id``, ``amount``, ``currency``, ...).
    """
    payload = {
        "amount": amount,
        "currency": currency,
        "receipt": receipt,
    }
    if notes:
        payload["notes"] = notes

    try:
        resp = requests.post(
            f"{settings.RAZORPAY_BASE_URL}/orders",
            json=payload,
            auth=_auth(),
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.error("Razorpay create order failed for receipt %s: %s", receipt, exc)
        raise GatewayError("Payment gateway unreachable") from exc

    try:
        body = resp.json()
    except ValueError:
        body = {"raw": resp.text}

    if not resp.ok:
        logger.error("Razorpay rejected order for receipt %s: %s %s", receipt, resp.status_code, body)
        raise GatewayError("Failed to create Razorpay order", details=body)
    if not body.get("id"):
        raise GatewayError("Missing order id from provider", details=body)
    return body


def fetch_order(gateway_order_id: str) -> Dict[str, Any]:
    try:
        with _read_session() as session:
            resp = session.get(
                f"{settings.RAZORPAY_BASE_URL}/orders/{gateway_order_id}",
                auth=_auth(),
                timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            )
            resp.raise_for_status()
            return resp.json()
    except requests.RequestException as exc:
        raise GatewayError(f"Unable to fetch Razorpay order {gateway_order_id}") from exc
