"""Tests for OrderService: finalisation, selection, free tweak, variant batches."""
import pytest

from serenade.models.customization import CustomizationTweak
from serenade.models.order import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_FAILED,
    ORDER_STATUS_GENERATING,
    ORDER_STATUS_PAID,
)
from serenade.models.song_variant import (
    VARIANT_COMPLETE,
    VARIANT_FAILED,
    VARIANT_GENERATING,
    VARIANT_PENDING,
)
from serenade.services.errors import NotFoundError, PreconditionError
from serenade.services.orders.service import OrderService


class TestFinalize:
    def test_not_settled_while_generating(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE, VARIANT_GENERATING, VARIANT_FAILED),
                           status=ORDER_STATUS_GENERATING)
        assert OrderService(db).finalize_order_if_settled(order.id) is None
        assert make.reload(order).status == ORDER_STATUS_GENERATING

    def test_any_complete_settles_completed(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_FAILED, VARIANT_COMPLETE, VARIANT_FAILED),
                           status=ORDER_STATUS_GENERATING)
        assert OrderService(db).finalize_order_if_settled(order.id) == ORDER_STATUS_COMPLETED

    def test_all_failed_settles_failed(self, db, make, celery_delays):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_FAILED,) * 3,
                           status=ORDER_STATUS_GENERATING)
        assert OrderService(db).finalize_order_if_settled(order.id) == ORDER_STATUS_FAILED
        celery_delays.email.assert_not_called()

    def test_settling_twice_is_a_noop(self, db, make, celery_delays):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 3,
                           status=ORDER_STATUS_GENERATING)
        svc = OrderService(db)
        assert svc.finalize_order_if_settled(order.id) == ORDER_STATUS_COMPLETED
        assert svc.finalize_order_if_settled(order.id) is None
        assert celery_delays.email.call_count == 1

    def test_ready_email_not_repeated_after_reopen(self, db, make, celery_delays):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 3,
                           status=ORDER_STATUS_GENERATING)
        svc = OrderService(db)
        svc.finalize_order_if_settled(order.id)
        svc.reopen_for_generation(order.id)
        db.commit()
        svc.finalize_order_if_settled(order.id)
        assert celery_delays.email.call_count == 1


class TestCreatePendingVariants:
    def test_existing_numbers_skipped(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,))

        created = OrderService(db).create_pending_variants(order, [1, 2, 3])
        db.commit()

        assert [v.variant_number for v in created] == [2, 3]
        assert [v.variant_number for v in make.variants(order)] == [1, 2, 3]

    def test_next_variant_number(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user))
        assert OrderService(db).next_variant_number(order.id) == 4


class TestSelectVariant:
    def test_select_returns_share_data(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 3,
                           status=ORDER_STATUS_COMPLETED)
        variants = make.variants(order)

        result = OrderService(db).select_variant(order.id, variants[1].id, user.id)

        assert result["variantId"] == variants[1].id
        assert result["shareToken"] == variants[1].share_token
        assert result["recipientName"] == "Sarah"
        assert result["yourName"] == "Tom"
        assert result["occasion"] == "anniversary"

    def test_at_most_one_selected(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 3,
                           status=ORDER_STATUS_COMPLETED)
        variants = make.variants(order)
        svc = OrderService(db)

        svc.select_variant(order.id, variants[0].id, user.id)
        svc.select_variant(order.id, variants[2].id, user.id)

        selected = [v.variant_number for v in make.variants(order) if v.selected]
        assert selected == [3]

    def test_incomplete_variant_rejected(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE, VARIANT_FAILED, VARIANT_PENDING))
        variants = make.variants(order)
        with pytest.raises(PreconditionError):
            OrderService(db).select_variant(order.id, variants[1].id, user.id)
        assert not any(v.selected for v in make.variants(order))

    def test_foreign_order(self, db, make):
        owner, intruder = make.user(), make.user()
        order = make.order(owner, make.customization(owner), variants=(VARIANT_COMPLETE,) * 3)
        variant = make.variants(order)[0]
        with pytest.raises(NotFoundError):
            OrderService(db).select_variant(order.id, variant.id, intruder.id)

    def test_variant_from_another_order(self, db, make):
        user = make.user()
        customization = make.customization(user)
        order = make.order(user, customization, variants=(VARIANT_COMPLETE,))
        other = make.order(user, customization, variants=(VARIANT_COMPLETE,))
        with pytest.raises(NotFoundError):
            OrderService(db).select_variant(order.id, make.variants(other)[0].id, user.id)


class TestFreeTweak:
    def _completed(self, make, **overrides):
        user = make.user()
        order = make.order(user, make.customization(user), variants=(VARIANT_COMPLETE,) * 3,
                           status=ORDER_STATUS_COMPLETED, **overrides)
        return user, order

    def test_first_tweak_is_free(self, db, make, celery_delays):
        user, order = self._completed(make)

        result = OrderService(db).apply_free_tweak(order.id, user.id, "our song is Yellow", None, None)

        assert result == {"requiresPayment": False, "orderId": order.id, "variantNumber": 4}
        order = make.reload(order)
        assert order.tweak_count == 1
        assert order.status == ORDER_STATUS_PAID
        assert make.variants(order)[-1].generation_status == VARIANT_PENDING
        tweak = db.query(CustomizationTweak).one()
        assert tweak.special_memories == "our song is Yellow"
        assert tweak.source == "free"
        celery_delays.generation.assert_called_once_with(order.id)

    def test_second_tweak_requires_payment(self, db, make, celery_delays):
        user, order = self._completed(make, tweak_count=1)

        result = OrderService(db).apply_free_tweak(order.id, user.id, "again", None, None)

        assert result == {"requiresPayment": True}
        assert len(make.variants(order)) == 3
        celery_delays.generation.assert_not_called()

    def test_tweak_before_completion_rejected(self, db, make):
        user = make.user()
        order = make.order(user, make.customization(user), status=ORDER_STATUS_GENERATING)
        with pytest.raises(PreconditionError):
            OrderService(db).apply_free_tweak(order.id, user.id, "x", None, None)

    def test_tweak_variant_counts_toward_cap(self, db, make):
        user, order = self._completed(make)
        svc = OrderService(db)
        svc.apply_free_tweak(order.id, user.id, "x", None, None)
        assert svc.variant_count(order.id) == 4
