import tempfile
import unittest
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

import stripe

from backend.app import inventory, ordering
from backend.app.context import Collaborators
from backend.app.db import create_db_engine, init_db, open_session
from backend.app.models import StockSize
from backend.app.notifications import LogNotifier
from backend.app.payments import FakeGateway, PaymentError, StripeGateway, to_minor_units
from backend.app.results import ErrorKind
from backend.app.schemas import CartLine, CustomerIn, OrderCreate, ProductCreate, StockCreate


def bad_gateway_error():
    return stripe.APIError(
        "Invalid response body from API: <html>502 Bad Gateway</html> (HTTP response code was 502)",
        http_body="<html>502 Bad Gateway</html>",
        http_status=502,
    )


class TestStripeGateway(unittest.TestCase):
    def setUp(self):
        self.client = mock.Mock()
        self.gateway = StripeGateway("sk_test_123", client=self.client)

    def test_create_sends_minor_units(self):
        self.client.payment_intents.create.return_value = SimpleNamespace(
            id="pi_1", client_secret="pi_1_secret", status="requires_payment_method"
        )
        intent = self.gateway.create_payment_intent(Decimal("12.50"), "usd", {"order_number": "ORD-1-0001"})
        self.assertEqual(intent.id, "pi_1")
        self.assertFalse(intent.succeeded)
        params = self.client.payment_intents.create.call_args.kwargs["params"]
        self.assertEqual(params["amount"], 1250)
        self.assertEqual(params["currency"], "usd")
        self.assertEqual(params["metadata"], {"order_number": "ORD-1-0001"})

    def test_non_json_response_is_a_payment_error(self):
        self.client.payment_intents.create.side_effect = bad_gateway_error()
        with self.assertRaises(PaymentError) as cm:
            self.gateway.create_payment_intent(Decimal("1"), "usd", {})
        self.assertIn("502", str(cm.exception))

    def test_card_error_uses_the_user_message(self):
        self.client.payment_intents.create.side_effect = stripe.CardError(
            "Your card was declined.",
            None,
            "card_declined",
            json_body={"error": {"message": "Your card was declined."}},
        )
        with self.assertRaises(PaymentError) as cm:
            self.gateway.create_payment_intent(Decimal("1"), "usd", {})
        self.assertEqual(str(cm.exception), "Your card was declined.")

    def test_retrieve(self):
        self.client.payment_intents.retrieve.return_value = SimpleNamespace(
            id="pi_2", client_secret=None, status="succeeded"
        )
        intent = self.gateway.retrieve_payment_intent("pi_2")
        self.assertTrue(intent.succeeded)
        self.assertEqual(intent.client_secret, "")
        self.client.payment_intents.retrieve.side_effect = bad_gateway_error()
        with self.assertRaises(PaymentError):
            self.gateway.retrieve_payment_intent("pi_2")

    def test_secret_key_required(self):
        with self.assertRaises(ValueError):
            StripeGateway("")


class TestFakeGateway(unittest.TestCase):
    def test_minor_units_round_half_up(self):
        self.assertEqual(to_minor_units(Decimal("10.005")), 1001)
        self.assertEqual(to_minor_units(Decimal("7")), 700)

    def test_intents_start_unpaid(self):
        gateway = FakeGateway()
        intent = gateway.create_payment_intent(Decimal("3"), "usd", {})
        self.assertEqual(gateway.retrieve_payment_intent(intent.id).status, "requires_payment_method")
        gateway.mark_succeeded(intent.id)
        self.assertTrue(gateway.retrieve_payment_intent(intent.id).succeeded)
        with self.assertRaises(PaymentError):
            gateway.retrieve_payment_intent("pi_unknown")


class TestProcessorOutage(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.engine = create_db_engine(f"sqlite:///{self._tmpdir.name}/outage.db")
        init_db(self.engine)

    def tearDown(self):
        self.engine.dispose()
        self._tmpdir.cleanup()

    def call(self, fn, *args, **kwargs):
        with open_session(self.engine) as session:
            return fn(session, *args, **kwargs)

    def test_order_reports_payment_kind(self):
        product = self.call(
            inventory.create_product, ProductCreate(product_code="MUG", name="Mug", price=Decimal("8"))
        ).value
        stock = self.call(
            inventory.add_stock,
            StockCreate(product_id=product.id, quantity=5, size=StockSize.M, price=Decimal("8"), supplier="Acme"),
        ).value
        client = mock.Mock()
        client.payment_intents.create.side_effect = bad_gateway_error()
        ctx = Collaborators(gateway=StripeGateway("sk_test_123", client=client), notifier=LogNotifier())

        res = self.call(
            ordering.place_order,
            ctx,
            OrderCreate(items=[CartLine(stock_id=stock.id, quantity=1)], customer=CustomerIn(name="Ada", email="a@b.c")),
        )
        self.assertEqual(res.kind, ErrorKind.PAYMENT)
        self.assertEqual(self.call(inventory.get_stock, stock.id).value.quantity, 5)
