from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.errors import GatewayError
from services import razorpay


def response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    return resp


class TestMinorUnits:
    """Test cases for amount conversion"""

    @pytest.mark.parametrize("amount,expected", [
        (Decimal("59.99"), 5999),
        (Decimal("0.01"), 1),
        (Decimal("10"), 1000),
        (19.99, 1999),
        (Decimal("0.295"), 30),
        (Decimal("1234567.89"), 123456789),
    ])
    def test_to_minor_units(self, amount, expected):
        """Amounts are converted to paise"""
        assert razorpay.to_minor_units(amount) == expected


class TestCreateOrder:
    """Test cases for creating gateway orders"""

    @patch("services.razorpay.requests.post")
    def test_success(self, mock_post):
        """The gateway's order object is returned"""
        mock_post.return_value = response(200, {"id": "order_ABC", "amount": 5999, "currency": "INR"})

        body = razorpay.create_order(5999, "INR", "ord-1", notes={"order_id": "ord-1"})

        assert body["id"] == "order_ABC"
        args, kwargs = mock_post.call_args
        assert args[0].endswith("/orders")
        assert kwargs["json"] == {
            "amount": 5999, "currency": "INR", "receipt": "ord-1", "notes": {"order_id": "ord-1"},
        }
        assert kwargs["auth"] == ("rzp_test_key", "rzp_test_secret")
        assert kwargs["timeout"] == razorpay.settings.GATEWAY_TIMEOUT_SECONDS

    @patch("services.razorpay.requests.post")
    def test_rejected(self, mock_post):
        """Non-2xx answers raise GatewayError with the provider's body"""
        mock_post.return_value = response(400, {"error": {"code": "BAD_REQUEST_ERROR"}})

        with pytest.raises(GatewayError) as exc_info:
            razorpay.create_order(5999, "INR", "ord-1")

        assert exc_info.value.details == {"error": {"code": "BAD_REQUEST_ERROR"}}

    @patch("services.razorpay.requests.post")
    def test_missing_id(self, mock_post):
        """A success without an order id is treated as a failure"""
        mock_post.return_value = response(200, {"amount": 5999})

        with pytest.raises(GatewayError):
            razorpay.create_order(5999, "INR", "ord-1")

    @patch("services.razorpay.requests.post")
    def test_unreachable_is_not_retried(self, mock_post):
        """Network errors raise once; order creation is never retried"""
        mock_post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(GatewayError):
            razorpay.create_order(5999, "INR", "ord-1")

        assert mock_post.call_count == 1


class TestFetchOrder:
    """Test cases for reading gateway orders"""

    def test_fetch(self):
        """Orders are read by id"""
        session = MagicMock()
        session.__enter__.return_value = session
        session.get.return_value = response(200, {"id": "order_ABC", "status": "paid"})

        with patch.object(razorpay, "_read_session", return_value=session):
            body = razorpay.fetch_order("order_ABC")

        assert body["status"] == "paid"
        assert session.get.call_args[0][0].endswith("/orders/order_ABC")

    def test_fetch_failure(self):
        """HTTP errors raise GatewayError"""
        session = MagicMock()
        session.__enter__.return_value = session
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("500")

        with patch.object(razorpay, "_read_session", return_value=session):
            with pytest.raises(GatewayError):
                razorpay.fetch_order("order_ABC")
