from itertools import count

from schemas.users import CurrentUser
from security import jwt as jwt_utils
from security.signature import generate_signature

KEY_SECRET = "rzp_test_secret"

ADDRESS = {
    "full_name": "Asha Verma",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "region": "Karnataka",
    "postal_code": "560001",
    "phone": "9876543210",
}


class FakeGateway:
    """Stands in for services.razorpay: hands out sequential gateway order ids."""

    def __init__(self):
        self._ids = count(1)
        self.created = []
        self.remote_status = {}

    def create_order(self, amount, currency, receipt, notes=None):
        order = {
            "id": f"order_TEST{next(self._ids):04d}",
            "entity": "order",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
            "status": "created",
        }
        self.created.append(order)
        self.remote_status[order["id"]] = "created"
        return order

    def fetch_order(self, gateway_order_id):
        return {"id": gateway_order_id, "status": self.remote_status.get(gateway_order_id, "created")}


def sign(gateway_order_id: str, gateway_payment_id: str) -> str:
    return generate_signature(KEY_SECRET, gateway_order_id, gateway_payment_id)


def headers_for(user: CurrentUser) -> dict:
    token = jwt_utils.create_access_token(user.id, {"email": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}
