import tempfile
import unittest

from fastapi.testclient import TestClient

from backend.app.main import create_app
from backend.app.payments import FakeGateway
from backend.app.settings import Settings


class TestVenueSeatingAPI(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        # Point the app at a temporary sqlite DB for tests.
        cls._tmpdir = tempfile.TemporaryDirectory()
        cls.gateway = FakeGateway()
        cls.app = create_app(Settings(db_url=f"sqlite:///{cls._tmpdir.name}/api.db"), gateway=cls.gateway)
        cls.client = TestClient(cls.app)
        cls.client.__enter__()

    @classmethod
    def tearDownClass(cls):
        cls.client.__exit__(None, None, None)
        cls._tmpdir.cleanup()

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"ok": True})

    def test_venue_event_booking_flow(self):
        c = self.client

        v = c.post(
            "/venues",
            json={
                "name": "Arena",
                "rows": 3,
                "cols": 4,
                "aisleAfterCol": 2,
                "categories": [{"name": "General", "color": "#0f0", "rowCount": 2}, {"name": "VIP", "color": "#00f", "rowCount": 1}],
                "unavailableSeats": ["C4"],
            },
        )
        self.assertEqual(v.status_code, 200, v.text)
        venue = v.json()
        self.assertEqual(venue["total_seats"], 12)

        svg = c.get(f"/venues/{venue['id']}/diagram.svg")
        self.assertEqual(svg.headers["content-type"], "image/svg+xml")
        self.assertIn('data-seat="A1"', svg.text)

        ev = c.post(
            "/events",
            json={"name": "Final", "venue_id": venue["id"], "ticket_types": {"VIP": "40", "General": "25"}},
        ).json()
        self.assertEqual(len(ev["seats"]), 12)
        self.assertEqual(ev["seats"][0], {"id": "A1", "isBooked": False})

        b = c.post(
            "/bookings",
            json={"event_id": ev["id"], "seat_ids": ["A1", "B1"], "holder": {"name": "Ada", "email": "ada@example.com"}},
        )
        self.assertEqual(b.status_code, 200, b.text)
        placed = b.json()
        self.assertEqual(placed["total_amount"], "65.00")

        again = c.post(
            "/bookings",
            json={"event_id": ev["id"], "seat_ids": ["A1"], "holder": {"name": "Bob", "email": "bob@example.com"}},
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["detail"]["kind"], "CONFLICT")

        self.assertEqual(c.post("/bookings/confirm", json={"payment_reference": placed["payment_reference"]}).status_code, 402)
        self.gateway.mark_succeeded(placed["payment_reference"])
        confirmed = c.post("/bookings/confirm", json={"payment_reference": placed["payment_reference"]})
        self.assertEqual(confirmed.json()["status"], "confirmed")

        diagram = c.get(f"/venues/{venue['id']}/events/{ev['id']}/diagram").json()
        seats = {s["id"]: s for s in diagram["diagram"]["seats"]}
        self.assertFalse(seats["A1"]["available"])
        self.assertFalse(seats["C4"]["available"])
        self.assertTrue(seats["A2"]["available"])

        csv_text = c.get(f"/events/{ev['id']}/seats.csv").text
        self.assertIn(f"{ev['id']},A1,0,0,1", csv_text)

    def test_category_rows_exceed_venue_rows(self):
        r = self.client.post(
            "/venues",
            json={"name": "Tiny", "rows": 5, "cols": 5, "categories": [{"name": "VIP", "color": "#00f", "rowCount": 7}]},
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["detail"]["field"], "categories")

    def test_preview(self):
        r = self.client.post("/venues/preview", json={"rows": 2, "cols": 2, "booked": ["B2"]})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(len(body["seats"]), 4)
        self.assertTrue(body["svg"].startswith("<svg"))

    def test_order_flow(self):
        c = self.client
        c.post("/staff", json={"email": "admin@example.com", "role": "admin"})
        product = c.post("/products", json={"product_code": "CAP1", "name": "Cap", "price": "9.50"}).json()
        stock = c.post(
            "/stock",
            json={"product_id": product["id"], "quantity": 3, "size": "M", "price": "9.50", "supplier": "Acme", "low_stock_alert": 1},
        ).json()
        self.assertTrue(stock["batch_number"].startswith("BATCH_CAP1_"))

        too_many = c.post(
            "/orders", json={"items": [{"stock_id": stock["id"], "quantity": 4}], "customer": {"name": "Ada", "email": "a@x.io"}}
        )
        self.assertEqual(too_many.status_code, 409)

        r = c.post(
            "/orders",
            json={
                "items": [{"stock_id": stock["id"], "quantity": 2, "unit_price": "0.01"}],
                "customer": {"name": "Ada", "email": "a@x.io"},
                "shipping": "5",
                "total": "0.02",
            },
        )
        self.assertEqual(r.status_code, 200, r.text)
        order = r.json()
        self.assertEqual(order["total"], "24.00")
        self.assertEqual(c.get(f"/stock/{stock['id']}").json()["quantity"], 1)
        self.assertIn(stock["id"], [s["id"] for s in c.get("/stock/low").json()])

        bad = c.put(f"/orders/{order['id']}/status", json={"status": "delivered"})
        self.assertEqual(bad.status_code, 409)
        self.assertEqual(c.put(f"/orders/{order['id']}/status", json={"status": "processing"}).json()["status"], "processing")

        self.assertEqual(c.delete(f"/orders/{order['id']}").status_code, 200)
        self.assertEqual(c.get(f"/orders/{order['id']}").status_code, 410)
        self.assertEqual(c.get("/orders/999999").status_code, 404)
        self.assertEqual(c.post(f"/orders/{order['id']}/restore").status_code, 200)
        self.assertEqual(c.get(f"/orders/{order['id']}").json()["items"][0]["unit_price"], "9.50")

        restocked = c.post(f"/stock/{stock['id']}/restock", json={"quantity": 10}).json()
        self.assertEqual(restocked["quantity"], 11)

        summary = c.get("/orders/summary").json()
        self.assertGreaterEqual(summary["active_orders"], 1)
        export = c.get("/orders/export.csv")
        self.assertEqual(export.headers["content-type"].split(";")[0], "text/csv")
        self.assertIn(order["order_number"], export.text)

    def test_not_found_mapping(self):
        r = self.client.get("/venues/424242")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["detail"]["message"], "venue not found")
