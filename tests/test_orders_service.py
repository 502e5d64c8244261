from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.errors import InsufficientStock, InvalidOrder, InvalidTransition, NotFound, Unauthorized
from models.enums import OrderStatus, PaymentStatus
from models.payment import Payment
from schemas.order import OrderCreate, ShippingAddress
from services import orders as order_service

from helpers import ADDRESS


class TestShippingAddress:
    """Test cases for shipping address validation"""

    def test_valid_address(self):
        """All fields present and within bounds"""
        address = ShippingAddress(**ADDRESS)

        assert address.city == "Bengaluru"

    @pytest.mark.parametrize("field", list(ADDRESS))
    def test_blank_field_rejected(self, field):
        """Every field is required and non-empty"""
        data = dict(ADDRESS, **{field: "   "})

        with pytest.raises(ValidationError):
            ShippingAddress(**data)

    def test_short_postal_code_rejected(self):
        """Postal codes need at least five characters"""
        with pytest.raises(ValidationError):
            ShippingAddress(**dict(ADDRESS, postal_code="1234"))

    def test_short_phone_rejected(self):
        """Phone numbers need at least ten digits"""
        with pytest.raises(ValidationError):
            ShippingAddress(**dict(ADDRESS, phone="12345"))


class TestCreateOrder:
    """Test cases for placing orders"""

    def test_totals_and_snapshots(self, place_order, medium, large):
        """Prices come from the catalog and total = subtotal + shipping"""
        order = place_order([(medium, 2), (large, 1)])

        assert order.status == OrderStatus.PENDING.value
        assert order.subtotal == Decimal("61.97")  # 2 x 19.99 + 21.99
        assert order.shipping_cost == Decimal("10.00")
        assert order.total == order.subtotal + order.shipping_cost
        assert [i.quantity for i in order.items] == [2, 1]
        first, second = order.items
        assert first.unit_price == Decimal("19.99")
        assert first.total_price == Decimal("39.98")
        assert second.unit_price == Decimal("21.99")
        assert second.product_name == "Classic Tee"
        assert second.variant_details == {"size": "L", "color": "white"}

    def test_email_defaults_to_token_email(self, place_order, medium, customer):
        """Without an explicit email the caller's token email is used"""
        order = place_order([(medium, 1)])

        assert order.email == customer.email
        assert order.user_id == customer.id

    def test_stock_is_not_touched(self, db, place_order, medium):
        """Placing an order does not reserve stock"""
        place_order([(medium, 3)])

        db.refresh(medium)
        assert medium.stock_quantity == 5

    def test_unknown_variant(self, db, customer, tshirt):
        """Unknown variants are rejected"""
        data = OrderCreate(items=[{"variant_id": "missing", "quantity": 1}], shipping_address=ADDRESS)

        with pytest.raises(NotFound):
            order_service.create_order(db, customer, data)

    def test_inactive_product(self, db, place_order, tshirt, medium):
        """Variants of inactive products cannot be ordered"""
        tshirt.is_active = False
        db.commit()

        with pytest.raises(NotFound):
            place_order([(medium, 1)])

    def test_more_than_stock(self, place_order, large):
        """Quantities above the current stock are refused at submission"""
        with pytest.raises(InsufficientStock):
            place_order([(large, 3)])

    def test_stock_check_sums_repeated_lines(self, place_order, large):
        """Repeated lines for one variant are checked together"""
        with pytest.raises(InsufficientStock):
            place_order([(large, 2), (large, 1)])

    def test_empty_cart_rejected_by_schema(self):
        """An order needs at least one item"""
        with pytest.raises(ValidationError):
            OrderCreate(items=[], shipping_address=ADDRESS)

    def test_zero_quantity_rejected_by_schema(self, medium):
        """Quantities must be positive"""
        with pytest.raises(ValidationError):
            OrderCreate(items=[{"variant_id": medium.id, "quantity": 0}], shipping_address=ADDRESS)


class TestCancelOrder:
    """Test cases for owner cancellation"""

    def test_cancel_pending(self, place_order, db, medium, customer):
        """Owners can cancel pending orders"""
        order = place_order([(medium, 1)])

        cancelled = order_service.cancel_order(db, order.id, customer)

        assert cancelled.status == OrderStatus.CANCELLED.value

    def test_cancel_processing(self, place_order, db, medium, customer):
        """Processing orders can still be cancelled"""
        order = place_order([(medium, 1)])
        order_service.set_status(db, order.id, OrderStatus.PROCESSING.value)

        assert order_service.cancel_order(db, order.id, customer).status == OrderStatus.CANCELLED.value

    def test_cancel_shipped_refused(self, place_order, db, medium, customer):
        """Shipped orders can no longer be cancelled by the customer"""
        order = place_order([(medium, 1)])
        order_service.set_status(db, order.id, OrderStatus.SHIPPED.value)

        with pytest.raises(InvalidTransition):
            order_service.cancel_order(db, order.id, customer)

    def test_cancel_fails_open_payments(self, place_order, db, medium, customer):
        """Pending payment attempts are closed with the order"""
        order = place_order([(medium, 1)])
        payment = Payment(order_id=order.id, user_id=customer.id, gateway_order_id="order_X",
                          amount=order.total, currency="INR")
        db.add(payment)
        db.commit()

        order_service.cancel_order(db, order.id, customer)

        db.refresh(payment)
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.error_message == "Order cancelled by customer"

    def test_other_user_cannot_cancel(self, place_order, db, medium, other_customer):
        """Only the owner can cancel"""
        order = place_order([(medium, 1)])

        with pytest.raises(Unauthorized):
            order_service.cancel_order(db, order.id, other_customer)


class TestAdminStatus:
    """Test cases for administrator status changes"""

    def test_shipping_lifecycle(self, place_order, db, medium):
        """Administrators walk the order through shipping"""
        order = place_order([(medium, 1)])

        for status in ("processing", "shipped", "delivered"):
            order = order_service.set_status(db, order.id, status)
            assert order.status == status

    def test_cannot_set_confirmed(self, place_order, db, medium):
        """Confirmation only comes from a verified payment"""
        order = place_order([(medium, 1)])

        with pytest.raises(InvalidOrder):
            order_service.set_status(db, order.id, OrderStatus.CONFIRMED.value)

    def test_terminal_status_is_final(self, place_order, db, medium):
        """Delivered orders do not change again"""
        order = place_order([(medium, 1)])
        order_service.set_status(db, order.id, "delivered")

        with pytest.raises(InvalidTransition):
            order_service.set_status(db, order.id, "processing")

    def test_unknown_order(self, db):
        """Unknown order ids raise NotFound"""
        with pytest.raises(NotFound):
            order_service.set_status(db, "missing", "shipped")
