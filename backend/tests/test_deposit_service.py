import unittest
from datetime import timedelta
from decimal import Decimal

from rentalshop import create_app
from rentalshop.errors import ConflictError, NotFoundError, ValidationError
from rentalshop.extensions import db
from rentalshop.models import PaymentTransaction
from rentalshop.services.deposit_service import DepositLedger
from rentalshop.services.order_service import OrderService
from rentalshop.services.repository import OrderRepository

from factories import ACTOR, NOW, order_input, seed_directory


class LocalBalanceRepository(OrderRepository):
    """Store without the in-database balance recompute."""
    supports_balance_recalculation = False


class DepositLedgerTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "BUSINESS_TIMEZONE": "UTC",
            "LOG_LEVEL": "WARNING",
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        self.branch, self.owner, self.staff, self.customer = seed_directory(db.session)
        self.repository = OrderRepository(db.session)
        self.orders = OrderService(self.repository, business_timezone="UTC")
        self.ledger = DepositLedger(self.repository)
        # Subtotal 2000, GST 100, total 2100, deposit 1000 collected
        self.order = self._create()

    def tearDown(self):
        db.session.rollback()

    def _create(self, **kwargs):
        data = order_input(self.branch, self.staff, self.customer, **kwargs)
        return self.orders.create_order(data, ACTOR, now=NOW)

    def _types(self, order):
        return [t.transaction_type for t in self.ledger.get_transactions(order.id)]

    # =========================================================================
    # REFUNDS
    # =========================================================================

    def test_collected_deposit_sets_balance(self):
        self.assertTrue(self.order.security_deposit_collected)
        self.assertEqual(self.order.deposit_balance, Decimal("1000.00"))
        self.assertEqual(self._types(self.order), ["deposit_collected"])

    def test_partial_then_full_refund(self):
        order = self.ledger.refund_security_deposit(self.order.id, Decimal("400"), ACTOR, method="cash", now=NOW)
        self.assertEqual(order.deposit_balance, Decimal("600.00"))
        self.assertEqual(order.security_deposit_refunded_amount, Decimal("400.00"))
        self.assertFalse(order.security_deposit_refunded)

        refund_at = NOW + timedelta(days=2)
        order = self.ledger.refund_security_deposit(self.order.id, Decimal("600"), ACTOR, now=refund_at)
        self.assertEqual(order.deposit_balance, Decimal("0"))
        self.assertEqual(order.security_deposit_refunded_amount, Decimal("1000.00"))
        self.assertTrue(order.security_deposit_refunded)
        self.assertEqual(order.security_deposit_refund_date, refund_at)

    def test_refund_after_full_refund_is_rejected(self):
        self.ledger.refund_security_deposit(self.order.id, Decimal("1000"), ACTOR, now=NOW)
        with self.assertRaises(ValidationError):
            self.ledger.refund_security_deposit(self.order.id, Decimal("1"), ACTOR, now=NOW)
        self.assertEqual(self._types(self.order), ["deposit_collected", "deposit_refund"])

    def test_refund_within_one_cent_is_accepted(self):
        order = self.ledger.refund_security_deposit(self.order.id, Decimal("1000.01"), ACTOR, now=NOW)
        self.assertEqual(order.deposit_balance, Decimal("0"))
        self.assertTrue(order.security_deposit_refunded)

    def test_refund_beyond_tolerance_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.ledger.refund_security_deposit(self.order.id, Decimal("1000.02"), ACTOR, now=NOW)
        self.assertEqual(self.order.deposit_balance, Decimal("1000.00"))

    def test_non_positive_amounts_are_rejected(self):
        for amount in (Decimal("0"), Decimal("-5"), "abc"):
            with self.assertRaises(ValidationError):
                self.ledger.refund_security_deposit(self.order.id, amount, ACTOR, now=NOW)

    def test_stale_version_conflicts(self):
        with self.assertRaises(ConflictError):
            self.ledger.refund_security_deposit(
                self.order.id, Decimal("100"), ACTOR, expected_version=self.order.version_id + 1, now=NOW,
            )

    def test_unknown_order(self):
        with self.assertRaises(NotFoundError):
            self.ledger.refund_security_deposit(987654, Decimal("100"), ACTOR, now=NOW)

    def test_local_recompute_matches_server_recompute(self):
        ledger = DepositLedger(LocalBalanceRepository(db.session))
        order = ledger.refund_security_deposit(self.order.id, Decimal("250"), ACTOR, now=NOW)
        self.assertEqual(order.deposit_balance, Decimal("750.00"))
        self.assertEqual(order.security_deposit_refunded_amount, Decimal("250.00"))

        order = ledger.recalculate_balance(self.order.id)
        self.assertEqual(order.deposit_balance, Decimal("750.00"))

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def test_collect_outstanding_up_to_amount_due(self):
        item = self.order.items[0]
        self.orders.update_item_damage(item.id, ACTOR, damage_cost=Decimal("500"), now=NOW)
        # 2000 + 100 + 500 - 1000 deposit

        with self.assertRaises(ValidationError):
            self.ledger.collect_outstanding_amount(self.order.id, Decimal("1700"), ACTOR, now=NOW)
        self.assertEqual(self.order.additional_amount_collected, Decimal("0"))
        self.assertEqual(self._types(self.order), ["deposit_collected"])

        order = self.ledger.collect_outstanding_amount(self.order.id, Decimal("1600"), ACTOR, method="upi", now=NOW)
        self.assertEqual(order.additional_amount_collected, Decimal("1600.00"))
        self.assertTrue(order.security_deposit_collected)
        self.assertEqual(order.deposit_balance, Decimal("1000.00"))
        self.assertEqual(self._types(order), ["deposit_collected", "outstanding_collected"])

    def test_outstanding_collection_is_not_refundable(self):
        item = self.order.items[0]
        self.orders.update_item_damage(item.id, ACTOR, damage_cost=Decimal("500"), now=NOW)
        self.ledger.collect_outstanding_amount(self.order.id, Decimal("1600"), ACTOR, now=NOW)

        order = self.ledger.recalculate_balance(self.order.id)
        self.assertEqual(order.deposit_balance, Decimal("1000.00"))
        with self.assertRaises(ValidationError):
            self.ledger.refund_security_deposit(self.order.id, Decimal("1500"), ACTOR, now=NOW)

    def test_deposit_collected_later_defaults_to_remaining(self):
        order = self._create(collected=False, invoice_number="GLAORD-20261018-7777")
        self.assertFalse(order.security_deposit_collected)
        self.assertEqual(self._types(order), [])

        order = self.ledger.record_deposit_collection(order.id, ACTOR, method="cash", now=NOW)
        self.assertTrue(order.security_deposit_collected)
        self.assertEqual(order.deposit_balance, Decimal("1000.00"))
        self.assertEqual(self._types(order), ["deposit_collected"])

        with self.assertRaises(ValidationError):
            self.ledger.record_deposit_collection(order.id, ACTOR, now=NOW)

    def test_deposit_collection_cannot_exceed_deposit(self):
        order = self._create(collected=False, invoice_number="GLAORD-20261018-8888")
        with self.assertRaises(ValidationError):
            self.ledger.record_deposit_collection(order.id, ACTOR, amount=Decimal("1500"), now=NOW)
        self.assertEqual(db.session.query(PaymentTransaction).filter_by(order_id=order.id).count(), 0)


if __name__ == "__main__":
    unittest.main()
