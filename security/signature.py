"""HMAC-SHA256 signatures for gateway payment callbacks.

The gateway signs ``"<gateway_order_id>|<gateway_payment_id>"`` with the
merchant's key secret and hands the hex digest to the browser, so a callback
can only be trusted once the digest has been recomputed here.
"""

import hashlib
import hmac


def _message(order_id: str, payment_id: str) -> bytes:
    return f"{order_id}|{payment_id}".encode("utf-8")


def generate_signature(secret: str, order_id: str, payment_id: str) -> str:
    return hmac.new(secret.encode("utf-8"), _message(order_id, payment_id), hashlib.sha256).hexdigest()


def verify(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    """Return True when ``signature`` matches the expected digest.

    Comparison is constant-time over the full string.
    """
    if not isinstance(signature, str) or not signature:
        return False
    expected = generate_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
