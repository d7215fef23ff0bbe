import os
import unittest

from fastapi.testclient import TestClient


os.environ.setdefault("RENTAL_MANAGEMENT_DB_URL", "sqlite+pysqlite:///:memory:")

from rental_management import RentalMan as app_module
from rental_management.models.rental_models import AuditLog
from rental_management.tests.db_support import make_engine, make_session_factory


ADMIN = {"X-Admin-ID": "3"}


class OrdersApiTests(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine()
        self.SessionLocal = make_session_factory(self.engine)

        def _override():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app_module.app.dependency_overrides[app_module.get_rental_db] = _override
        self.client = TestClient(app_module.app)

    def tearDown(self):
        app_module.app.dependency_overrides.clear()
        self.engine.dispose()

    def _product(self, name="Shuttering Plate", stock=10, price=25.0):
        category = self.client.post("/api/categories", json={"categoryName": "Formwork"}, headers=ADMIN)
        self.assertEqual(category.status_code, 201)
        response = self.client.post(
            "/api/products",
            json={
                "productName": name,
                "perDayPrice": price,
                "categoryID": category.json()["categoryID"],
                "stock": stock,
            },
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def _order(self, lines, key="web-1"):
        return self.client.post(
            "/api/orders",
            json={
                "idempotencyKey": key,
                "customerName": "Meena",
                "customerPhoneNumber": "9000000001",
                "rentingStartDate": "2026-03-01T00:00:00",
                "products": [{"productId": pid, "rentedAmount": qty} for pid, qty in lines],
            },
            headers=ADMIN,
        )

    def _stock(self, product_id):
        return self.client.get(f"/api/products/{product_id}").json()["stock"]

    def test_healthcheck(self):
        response = self.client.get("/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_mutations_require_actor_header(self):
        response = self.client.post("/api/categories", json={"categoryName": "Tools"})
        self.assertEqual(response.status_code, 401)

    def test_order_flow_from_rental_to_bill(self):
        product = self._product()
        created = self._order([(product["productID"], 4)])
        self.assertEqual(created.status_code, 201)
        order = created.json()["order"]
        self.assertEqual(order["orderStatus"], "on_rent")
        self.assertEqual(order["products"][0]["remainingQuantity"], 4)
        self.assertEqual(self._stock(product["productID"]), 6)

        partial = self.client.post(
            f"/api/orders/{order['orderID']}/return-product",
            json={"productId": product["productID"], "returnedQuantity": 1, "returnedDate": "2026-03-02T00:00:00"},
            headers=ADMIN,
        )
        self.assertEqual(partial.status_code, 200)
        self.assertFalse(partial.json()["allFullyReturned"])
        self.assertEqual(partial.json()["totalCost"], 25.0)

        premature_bill = self.client.get(f"/api/orders/{order['orderID']}/bill")
        self.assertEqual(premature_bill.status_code, 409)

        final = self.client.post(
            f"/api/orders/{order['orderID']}/return-product",
            json={"productId": product["productID"], "returnedQuantity": 3, "returnedDate": "2026-03-04T00:00:00"},
            headers=ADMIN,
        )
        body = final.json()
        self.assertTrue(body["allFullyReturned"])
        self.assertEqual(body["order"]["orderStatus"], "returned_after_rent")
        self.assertEqual(body["order"]["totalPrice"], 25.0 + 3 * 25.0 * 3)
        self.assertEqual(self._stock(product["productID"]), 10)

        bill = self.client.get(f"/api/orders/{order['orderID']}/bill")
        self.assertEqual(bill.status_code, 200)
        self.assertEqual(len(bill.json()["items"]), 2)
        self.assertEqual(bill.json()["computedTotal"], bill.json()["totalPrice"])

        with self.SessionLocal() as db:
            actions = [row.Action for row in db.query(AuditLog).filter(AuditLog.EntityType == "Order").order_by(AuditLog.AuditID)]
        self.assertEqual(actions, ["CreateOrder", "ReturnProduct", "ReturnProduct"])

    def test_over_return_reports_structured_conflict(self):
        product = self._product()
        order = self._order([(product["productID"], 4)]).json()["order"]

        response = self.client.post(
            f"/api/orders/{order['orderID']}/return-product",
            json={"productId": product["productID"], "returnedQuantity": 6, "returnedDate": "2026-03-02T00:00:00"},
            headers=ADMIN,
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["kind"], "OverReturn")
        self.assertEqual(response.json()["field"], "returnedQuantity")
        self.assertEqual(self._stock(product["productID"]), 6)

    def test_insufficient_stock_is_a_conflict(self):
        product = self._product(stock=2)

        response = self._order([(product["productID"], 3)])

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["kind"], "InsufficientStock")
        self.assertEqual(self._stock(product["productID"]), 2)

    def test_missing_order_is_not_found(self):
        response = self.client.post("/api/orders/77/cancel", headers=ADMIN)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["kind"], "OrderNotFound")

    def test_missing_order_reads_are_not_found(self):
        for path in ("/api/orders/77", "/api/orders/77/bill"):
            response = self.client.get(path)
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()["kind"], "OrderNotFound")
            self.assertEqual(response.json()["entity"], 77)

    def test_update_cannot_relabel_order_status(self):
        product = self._product()
        order = self._order([(product["productID"], 4)]).json()["order"]

        response = self.client.put(
            f"/api/orders/{order['orderID']}",
            json={"orderStatus": "returned_after_rent"},
            headers=ADMIN,
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["kind"], "InvalidTransition")
        self.assertEqual(response.json()["field"], "orderStatus")
        self.assertEqual(self.client.get(f"/api/orders/{order['orderID']}").json()["orderStatus"], "on_rent")
        self.assertEqual(self._stock(product["productID"]), 6)

    def test_cancel_and_complete_return_endpoints(self):
        product = self._product()
        first = self._order([(product["productID"], 5)], key="a").json()["order"]
        second = self._order([(product["productID"], 2)], key="b").json()["order"]
        self.assertEqual(self._stock(product["productID"]), 3)

        cancelled = self.client.post(f"/api/orders/{first['orderID']}/cancel", headers=ADMIN)
        self.assertEqual(cancelled.json()["order"]["orderStatus"], "cancelled")
        self.assertEqual(self._stock(product["productID"]), 8)

        incomplete = self.client.post(f"/api/orders/{second['orderID']}/complete-return", headers=ADMIN)
        self.assertEqual(incomplete.status_code, 409)
        self.assertEqual(incomplete.json()["kind"], "IncompleteReturn")

        returned = self.client.post(
            f"/api/orders/{second['orderID']}/return",
            json={"returnedDate": "2026-03-03T12:00:00"},
            headers=ADMIN,
        )
        self.assertEqual(returned.status_code, 200)
        self.assertEqual(returned.json()["order"]["totalPrice"], 3 * 25.0 * 2)

        completed = self.client.post(f"/api/orders/{second['orderID']}/complete-return", headers=ADMIN)
        self.assertEqual(completed.status_code, 200)
        self.assertEqual(completed.json()["order"]["totalPrice"], 150.0)
        self.assertEqual(self._stock(product["productID"]), 10)

    def test_update_cannot_change_quantities(self):
        product = self._product()
        order = self._order([(product["productID"], 2)]).json()["order"]

        rejected = self.client.put(
            f"/api/orders/{order['orderID']}",
            json={"rentedAmount": 9},
            headers=ADMIN,
        )
        self.assertEqual(rejected.status_code, 422)

        accepted = self.client.put(
            f"/api/orders/{order['orderID']}",
            json={"paymentStatus": "paid", "customerPhoneNumber": "9111111111"},
            headers=ADMIN,
        )
        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(accepted.json()["order"]["paymentStatus"], "paid")
        self.assertEqual(accepted.json()["order"]["products"][0]["rentedAmount"], 2)
        self.assertEqual(self._stock(product["productID"]), 8)

    def test_duplicate_idempotency_key_is_rejected(self):
        product = self._product()
        self.assertEqual(self._order([(product["productID"], 2)], key="same").status_code, 201)

        duplicate = self._order([(product["productID"], 2)], key="same")

        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["kind"], "DuplicateRequest")
        self.assertEqual(self._stock(product["productID"]), 8)

    def test_listing_searches_snapshot_names(self):
        plate = self._product("Shuttering Plate")
        jack = self._product("Base Jack")
        self._order([(plate["productID"], 1)], key="p")
        self._order([(jack["productID"], 1)], key="j")

        listing = self.client.get("/api/orders", params={"search": "jack"})

        self.assertEqual(listing.status_code, 200)
        body = listing.json()
        self.assertEqual(body["total"], 1)
        self.assertEqual(body["totalPages"], 1)
        self.assertEqual(body["orders"][0]["products"][0]["productName"], "Base Jack")

        everything = self.client.get("/api/orders", params={"limit": 1, "page": 2}).json()
        self.assertEqual(everything["total"], 2)
        self.assertEqual(everything["totalPages"], 2)
        self.assertEqual(len(everything["orders"]), 1)


if __name__ == "__main__":
    unittest.main()
