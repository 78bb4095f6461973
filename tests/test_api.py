import unittest
from unittest.mock import patch

import jwt
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from tests.support import LedgerTestCase, disk_error, locked_error

JWT_SECRET = "test-secret-for-the-ledger-api-0123456789"


class ApiTestCase(LedgerTestCase):
    settings_overrides = {}
    raise_server_exceptions = True

    def setUp(self):
        super().setUp()
        settings = Settings(
            _env_file=None,
            ADJUST_RETRY_BACKOFF_SECONDS=0.0,
            ADJUST_RETRY_JITTER=0.0,
            **self.settings_overrides,
        )
        self.client = TestClient(
            create_app(settings, database=self.database),
            raise_server_exceptions=self.raise_server_exceptions,
        )
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        super().tearDown()


class AdjustEndpointTest(ApiTestCase):
    def test_successful_adjustment_returns_updated_medicine(self):
        medicine_id = self.add_medicine(quantity=10)

        response = self.client.post(
            "/medicines/{}/adjust".format(medicine_id),
            json={"changeAmount": -5, "reason": "dispensed", "changedBy": "pharmacist-1"},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["medicine"]["id"], medicine_id)
        self.assertEqual(body["medicine"]["quantityOnHand"], 5)
        self.assertIn("updatedAt", body["medicine"])
        self.assertEqual(self.quantity_of(medicine_id), 5)

    def test_rejected_change_amounts(self):
        medicine_id = self.add_medicine(quantity=10)
        url = "/medicines/{}/adjust".format(medicine_id)

        for payload in ({"changeAmount": 0}, {"changeAmount": "5"}, {"changeAmount": 2.5}, {"changeAmount": True}, {}):
            with self.subTest(payload=payload):
                response = self.client.post(url, json=payload)
                self.assertEqual(response.status_code, 400)
                body = response.json()
                self.assertFalse(body["success"])
                self.assertEqual(body["error"]["kind"], "invalid_input")

        self.assertEqual(self.quantity_of(medicine_id), 10)
        self.assertEqual(self.history_of(medicine_id), [])

    def test_out_of_range_change_amounts(self):
        medicine_id = self.add_medicine(quantity=10)
        url = "/medicines/{}/adjust".format(medicine_id)

        for value in (2**31, 2**70, -(2**31) - 1):
            with self.subTest(value=value):
                response = self.client.post(url, json={"changeAmount": value})
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["error"]["kind"], "invalid_input")

        self.assertEqual(self.quantity_of(medicine_id), 10)

    def test_insufficient_stock_is_a_client_error(self):
        medicine_id = self.add_medicine(quantity=5)

        response = self.client.post("/medicines/{}/adjust".format(medicine_id), json={"changeAmount": -10})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["kind"], "insufficient_stock")
        self.assertEqual(self.quantity_of(medicine_id), 5)

    def test_unknown_medicine_is_not_found(self):
        response = self.client.post("/medicines/9999/adjust", json={"changeAmount": 3})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["kind"], "not_found")

    def test_history_is_returned_newest_first(self):
        medicine_id = self.add_medicine(quantity=10)
        url = "/medicines/{}/adjust".format(medicine_id)
        for delta in (-5, 3, -2):
            self.assertEqual(self.client.post(url, json={"changeAmount": delta}).status_code, 200)
        self.assertEqual(self.client.post(url, json={"changeAmount": -100}).status_code, 400)

        response = self.client.get("/history/{}".format(medicine_id))

        self.assertEqual(response.status_code, 200)
        entries = response.json()
        self.assertEqual([entry["changeAmount"] for entry in entries], [-2, 3, -5])
        self.assertTrue(all(entry["medicineId"] == medicine_id for entry in entries))
        self.assertEqual(self.quantity_of(medicine_id), 6)

        limited = self.client.get("/history/{}".format(medicine_id), params={"limit": 1}).json()
        self.assertEqual([entry["changeAmount"] for entry in limited], [-2])

    def test_history_of_unknown_medicine_is_empty(self):
        response = self.client.get("/history/9999")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])

    def test_reconciliation(self):
        medicine_id = self.add_medicine(quantity=10)
        self.client.post("/medicines/{}/adjust".format(medicine_id), json={"changeAmount": -4})

        response = self.client.get("/history/{}/reconciliation".format(medicine_id))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["balanced"])
        self.assertEqual(body["historyTotal"], -4)
        self.assertEqual(body["quantityOnHand"], 6)
        self.assertEqual(self.client.get("/history/9999/reconciliation").status_code, 404)


class MedicineEndpointTest(ApiTestCase):
    def test_create_and_read(self):
        response = self.client.post(
            "/medicines",
            json={"sku": "PCM-500", "name": "Paracetamol 500mg", "unitPrice": "1.25", "quantityOnHand": 30},
        )

        self.assertEqual(response.status_code, 201)
        created = response.json()
        self.assertEqual(created["quantityOnHand"], 30)
        self.assertEqual(created["unitPrice"], "1.25")

        fetched = self.client.get("/medicines/{}".format(created["id"])).json()
        self.assertEqual(fetched["sku"], "PCM-500")
        self.assertEqual([item["id"] for item in self.client.get("/medicines").json()], [created["id"]])

    def test_duplicate_sku_conflicts(self):
        payload = {"sku": "IBU-200", "name": "Ibuprofen"}
        self.assertEqual(self.client.post("/medicines", json=payload).status_code, 201)

        response = self.client.post("/medicines", json=payload)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["kind"], "conflict")

    def test_negative_opening_quantity_is_rejected(self):
        response = self.client.post("/medicines", json={"sku": "X-1", "name": "X", "quantityOnHand": -1})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["kind"], "invalid_input")

    def test_update_refuses_quantity_fields(self):
        medicine_id = self.add_medicine(quantity=10)

        response = self.client.put("/medicines/{}".format(medicine_id), json={"quantityOnHand": 99})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.quantity_of(medicine_id), 10)

    def test_update_metadata(self):
        medicine_id = self.add_medicine(quantity=10)

        response = self.client.put("/medicines/{}".format(medicine_id), json={"name": "Amoxicillin 250mg"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Amoxicillin 250mg")
        self.assertEqual(response.json()["quantityOnHand"], 10)

    def test_missing_medicine(self):
        self.assertEqual(self.client.get("/medicines/9999").status_code, 404)
        self.assertEqual(self.client.put("/medicines/9999", json={"name": "Ghost"}).status_code, 404)
        response = self.client.delete("/medicines/9999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["kind"], "not_found")

    def test_delete(self):
        untouched = self.add_medicine(quantity=1)
        adjusted = self.add_medicine(quantity=1)
        self.client.post("/medicines/{}/adjust".format(adjusted), json={"changeAmount": 1})

        self.assertEqual(self.client.delete("/medicines/{}".format(untouched)).json(), {"deleted": True})
        self.assertEqual(self.client.delete("/medicines/{}".format(adjusted)).status_code, 409)
        self.assertEqual(self.history_of(adjusted), [1])

    def test_health(self):
        body = self.client.get("/health").json()

        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["database"], "ok")


class FailureResponseTest(ApiTestCase):
    raise_server_exceptions = False

    def assertErrorBody(self, response, status_code, kind):
        self.assertEqual(response.status_code, status_code)
        self.assertTrue(response.headers["content-type"].startswith("application/json"))
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["kind"], kind)
        return body

    def test_storage_error_while_reading_history(self):
        medicine_id = self.add_medicine(quantity=10)

        with patch("app.routers.stock.iter_history", side_effect=disk_error("SELECT")):
            response = self.client.get("/history/{}".format(medicine_id))

        body = self.assertErrorBody(response, 500, "backend_failure")
        self.assertNotIn("disk", body["error"]["message"])

    def test_contention_while_reconciling(self):
        medicine_id = self.add_medicine(quantity=10)

        with patch("app.routers.stock.reconcile", side_effect=locked_error("SELECT")):
            response = self.client.get("/history/{}/reconciliation".format(medicine_id))

        self.assertErrorBody(response, 409, "conflict")

    def test_storage_error_on_medicine_listing(self):
        with patch("app.services.medicine_service.list_medicines", side_effect=disk_error("SELECT")):
            response = self.client.get("/medicines")

        self.assertErrorBody(response, 500, "backend_failure")

    def test_unexpected_error_is_structured(self):
        medicine_id = self.add_medicine(quantity=10)

        with patch("app.routers.stock.reconcile", side_effect=RuntimeError("boom")):
            response = self.client.get("/history/{}/reconciliation".format(medicine_id))

        body = self.assertErrorBody(response, 500, "backend_failure")
        self.assertNotIn("boom", body["error"]["message"])

    def test_oversized_opening_quantity_is_rejected(self):
        response = self.client.post("/medicines", json={"sku": "X-2", "name": "X", "quantityOnHand": 2**31})

        self.assertErrorBody(response, 400, "invalid_input")

    def test_error_body_is_documented(self):
        schema = self.client.get("/openapi.json").json()

        adjust = schema["paths"]["/medicines/{medicine_id}/adjust"]["post"]["responses"]
        ref = adjust["404"]["content"]["application/json"]["schema"]["$ref"]
        self.assertTrue(ref.startswith("#/components/schemas/ErrorResponse"))
        self.assertIn(ref.rsplit("/", 1)[-1], schema["components"]["schemas"])


class ApiKeyAuthTest(ApiTestCase):
    settings_overrides = {"API_KEYS": "alpha, beta"}

    def test_mutations_require_a_key(self):
        medicine_id = self.add_medicine(quantity=10)
        url = "/medicines/{}/adjust".format(medicine_id)

        response = self.client.post(url, json={"changeAmount": -1})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["kind"], "unauthorized")

        self.assertEqual(
            self.client.post(url, json={"changeAmount": -1}, headers={"X-API-Key": "wrong"}).status_code,
            401,
        )
        self.assertEqual(
            self.client.post(url, json={"changeAmount": -1}, headers={"X-API-Key": "beta"}).status_code,
            200,
        )
        self.assertEqual(self.quantity_of(medicine_id), 9)

    def test_reads_stay_open(self):
        medicine_id = self.add_medicine(quantity=10)

        self.assertEqual(self.client.get("/medicines/{}".format(medicine_id)).status_code, 200)
        self.assertEqual(self.client.get("/history/{}".format(medicine_id)).status_code, 200)


class JwtAuthTest(ApiTestCase):
    settings_overrides = {"JWT_SECRET": JWT_SECRET}

    def _headers(self, subject):
        token = jwt.encode({"sub": subject}, JWT_SECRET, algorithm="HS256")
        return {"Authorization": "Bearer {}".format(token)}

    def test_token_subject_is_recorded_as_actor(self):
        medicine_id = self.add_medicine(quantity=10)

        response = self.client.post(
            "/medicines/{}/adjust".format(medicine_id),
            json={"changeAmount": -2},
            headers=self._headers("pharmacist-7"),
        )

        self.assertEqual(response.status_code, 200)
        history = self.client.get("/history/{}".format(medicine_id)).json()
        self.assertEqual(history[0]["changedBy"], "pharmacist-7")

    def test_explicit_actor_wins(self):
        medicine_id = self.add_medicine(quantity=10)

        self.client.post(
            "/medicines/{}/adjust".format(medicine_id),
            json={"changeAmount": 4, "changedBy": "night-shift"},
            headers=self._headers("pharmacist-7"),
        )

        history = self.client.get("/history/{}".format(medicine_id)).json()
        self.assertEqual(history[0]["changedBy"], "night-shift")

    def test_bad_token_is_rejected(self):
        medicine_id = self.add_medicine(quantity=10)
        token = jwt.encode({"sub": "intruder"}, "some-other-secret-of-sufficient-length", algorithm="HS256")

        response = self.client.post(
            "/medicines/{}/adjust".format(medicine_id),
            json={"changeAmount": -2},
            headers={"Authorization": "Bearer {}".format(token)},
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.quantity_of(medicine_id), 10)


if __name__ == "__main__":
    unittest.main()
