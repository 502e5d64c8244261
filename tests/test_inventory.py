import pytest

from core.errors import InsufficientStock, NotFound
from services import inventory


class TestDecrement:
    """Test cases for single-variant stock decrements"""

    def test_decrement_reduces_stock(self, db, medium):
        """Stock drops by the requested quantity"""
        remaining = inventory.decrement(db, medium.id, 2)
        db.commit()

        db.refresh(medium)
        assert remaining == 3
        assert medium.stock_quantity == 3

    def test_decrement_to_zero(self, db, medium):
        """Selling the last unit leaves stock at zero"""
        assert inventory.decrement(db, medium.id, 5) == 0

    def test_insufficient_stock_raises_and_leaves_stock(self, db, large):
        """Requests above the available stock never write a negative value"""
        with pytest.raises(InsufficientStock) as exc_info:
            inventory.decrement(db, large.id, 3)

        assert exc_info.value.available == 2
        assert exc_info.value.requested == 3
        db.refresh(large)
        assert large.stock_quantity == 2

    def test_unknown_variant(self, db, tshirt):
        """Missing variants raise NotFound"""
        with pytest.raises(NotFound):
            inventory.decrement(db, "no-such-variant", 1)

    def test_non_positive_quantity_rejected(self, db, medium):
        """Quantities must be positive"""
        with pytest.raises(ValueError):
            inventory.decrement(db, medium.id, 0)

    def test_reads_current_value_not_cached_copy(self, db, medium):
        """A stale in-session copy does not hide another writer's update"""
        db.execute(
            medium.__table__.update().where(medium.__table__.c.id == medium.id).values(stock_quantity=4)
        )
        # medium still holds 5 in memory
        assert inventory.decrement(db, medium.id, 1) == 3


class TestApplyOrder:
    """Test cases for decrementing a whole order"""

    def test_every_item_is_decremented(self, db, place_order, medium, large):
        """Each line takes its own quantity out of its variant"""
        order = place_order([(medium, 2), (large, 1)])

        shortfalls = inventory.apply_order(db, order)
        db.commit()

        db.refresh(medium)
        db.refresh(large)
        assert shortfalls == []
        assert medium.stock_quantity == 3
        assert large.stock_quantity == 1

    def test_repeated_variant_lines_accumulate(self, db, place_order, medium):
        """Two lines for the same variant both count"""
        order = place_order([(medium, 2), (medium, 1)])

        inventory.apply_order(db, order)
        db.commit()

        db.refresh(medium)
        assert medium.stock_quantity == 2

    def test_shortfall_is_reported_and_others_applied(self, db, place_order, medium, large):
        """A short variant is skipped and reported, the rest still move"""
        order = place_order([(medium, 1), (large, 2)])
        large.stock_quantity = 1
        db.commit()

        shortfalls = inventory.apply_order(db, order)
        db.commit()

        db.refresh(medium)
        db.refresh(large)
        assert len(shortfalls) == 1
        assert shortfalls[0].variant_id == large.id
        assert medium.stock_quantity == 4
        assert large.stock_quantity == 1
