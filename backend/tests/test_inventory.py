import tempfile
import unittest
from datetime import date
from decimal import Decimal

from backend.app import inventory
from backend.app.context import Collaborators
from backend.app.db import create_db_engine, init_db, open_session
from backend.app.identifiers import OrderNumberGenerator, batch_number
from backend.app.models import StaffRole, StockSize
from backend.app.notifications import Notifier, RecipientPolicy
from backend.app.payments import FakeGateway
from backend.app.results import ErrorKind
from backend.app.schemas import ProductCreate, StaffUserCreate, StockCreate, StockUpdate


class RecordingNotifier(Notifier):
    def __init__(self):
        self.low_stock = []

    def notify_low_stock(self, item_name, batch_or_variant, current_quantity, recipients):
        self.low_stock.append((item_name, batch_or_variant, current_quantity, list(recipients)))

    def notify_booking_confirmed(self, recipient_email, rendered_message, attachments=None):
        pass


class TestInventory(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.engine = create_db_engine(f"sqlite:///{self._tmpdir.name}/inventory.db")
        init_db(self.engine)
        self.notifier = RecordingNotifier()
        self.ctx = Collaborators(gateway=FakeGateway(), notifier=self.notifier)
        self.product = self.call(
            inventory.create_product,
            ProductCreate(product_code="TSH01", name="Tee", price=Decimal("12"), sizes=["S", "M"]),
        ).value

    def tearDown(self):
        self.engine.dispose()
        self._tmpdir.cleanup()

    def call(self, fn, *args, **kwargs):
        with open_session(self.engine) as session:
            return fn(session, *args, **kwargs)

    def add(self, quantity=10, size=StockSize.M, low_stock_alert=5):
        return self.call(
            inventory.add_stock,
            StockCreate(
                product_id=self.product.id,
                quantity=quantity,
                size=size,
                price=Decimal("12"),
                supplier="Acme",
                low_stock_alert=low_stock_alert,
            ),
        )

    def test_duplicate_product_code(self):
        res = self.call(inventory.create_product, ProductCreate(product_code="TSH01", name="Again"))
        self.assertEqual(res.kind, ErrorKind.CONFLICT)

    def test_add_stock_assigns_batch_number(self):
        stock = self.add().value
        self.assertEqual(stock.batch_number, batch_number("TSH01"))
        self.assertTrue(stock.batch_number.startswith("BATCH_TSH01_"))

    def test_add_stock_validation(self):
        self.assertEqual(self.add(quantity=-1).field, "quantity")
        self.assertEqual(self.add(size=StockSize.XL).field, "size")
        self.call(inventory.soft_delete_product, self.product.id)
        self.assertEqual(self.add().kind, ErrorKind.GONE)

    def test_restock(self):
        stock = self.add(quantity=2).value
        res = self.call(inventory.restock, stock.id, 5)
        self.assertTrue(res.ok, res)
        self.assertEqual(res.value.quantity, 7)
        self.assertEqual(self.call(inventory.restock, stock.id, 0).kind, ErrorKind.VALIDATION)
        self.assertEqual(self.call(inventory.restock, 999, 1).kind, ErrorKind.NOT_FOUND)
        self.call(inventory.soft_delete_stock, stock.id)
        self.assertEqual(self.call(inventory.restock, stock.id, 1).kind, ErrorKind.GONE)

    def test_soft_delete_and_restore_stock(self):
        stock = self.add().value
        self.assertTrue(self.call(inventory.soft_delete_stock, stock.id).ok)
        self.assertEqual(self.call(inventory.get_stock, stock.id).kind, ErrorKind.GONE)
        self.assertEqual(self.call(inventory.list_stock).value, [])
        self.assertEqual(self.call(inventory.restore_stock, stock.id).value.deleted_at, None)
        self.assertEqual(self.call(inventory.restore_stock, stock.id).kind, ErrorKind.INVALID_STATE)

    def test_update_stock_triggers_low_stock_check(self):
        self.call(inventory.create_staff_user, StaffUserCreate(email="Boss@Example.com", role=StaffRole.admin))
        stock = self.add(quantity=10).value
        res = self.call(inventory.update_stock, self.ctx, stock.id, StockUpdate(quantity=3))
        self.assertTrue(res.ok, res)
        self.assertEqual(self.notifier.low_stock, [("Tee", stock.batch_number, 3, ["boss@example.com"])])
        self.assertEqual(
            self.call(inventory.update_stock, self.ctx, stock.id, StockUpdate(price=Decimal("-1"))).field, "price"
        )

    def test_low_stock_listing_and_alerts(self):
        self.call(inventory.create_staff_user, StaffUserCreate(email="clerk@example.com"))
        low = self.add(quantity=1).value
        self.add(quantity=50)
        self.assertEqual([s.id for s in self.call(inventory.list_low_stock).value], [low.id])

        res = self.call(inventory.send_low_stock_alerts, self.ctx)
        self.assertEqual(res.value, {"low_stock": 1, "notified": True})
        self.assertEqual(self.notifier.low_stock[0][3], [])

        self.ctx.recipient_policy = RecipientPolicy.all
        self.call(inventory.send_low_stock_alerts, self.ctx)
        self.assertEqual(self.notifier.low_stock[1][3], ["clerk@example.com"])

    def test_staff_users(self):
        self.assertEqual(self.call(inventory.create_staff_user, StaffUserCreate(email="nope")).field, "email")
        self.assertTrue(self.call(inventory.create_staff_user, StaffUserCreate(email="a@example.com")).ok)
        self.assertEqual(
            self.call(inventory.create_staff_user, StaffUserCreate(email="A@example.com")).kind, ErrorKind.CONFLICT
        )


class TestIdentifiers(unittest.TestCase):
    def test_batch_number_format(self):
        self.assertEqual(batch_number("TSH01", date(2024, 3, 7)), "BATCH_TSH01_070324")

    def test_order_numbers(self):
        gen = OrderNumberGenerator(start=41, clock=lambda: 1700000000.5)
        self.assertEqual(gen.next(), "ORD-1700000000500-0042")
        self.assertEqual(gen.next(), "ORD-1700000000500-0043")

    def test_sequence_wraps(self):
        gen = OrderNumberGenerator(start=9999, clock=lambda: 1.0)
        self.assertEqual(gen.next(), "ORD-1000-0000")

    def test_reseed_never_goes_backwards(self):
        gen = OrderNumberGenerator(start=10, clock=lambda: 1.0)
        gen.reseed(3)
        self.assertEqual(gen.next(), "ORD-1000-0011")
        gen.reseed(100)
        self.assertEqual(gen.next(), "ORD-1000-0101")

    def test_recipient_policy_parse(self):
        self.assertIs(RecipientPolicy.parse("all"), RecipientPolicy.all)
        self.assertIs(RecipientPolicy.parse("everyone"), RecipientPolicy.admins)
