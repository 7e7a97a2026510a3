import os
import unittest
from unittest.mock import patch

import requests
from flask import Flask

import airtable_proxy
from site_settings import AIRTABLE_COMPANIES_TABLE, AIRTABLE_COUPONS_TABLE, AIRTABLE_REGISTRATIONS_TABLE

KEYS = {
    "AIRTABLE_BASE_ID": "appTEST",
    "AIRTABLE_PROGRAMS_API_KEY": "programs-key",
    "AIRTABLE_QUIZ_API_KEY": "quiz-key",
    "AIRTABLE_REGISTRATION_API_KEY": "registration-key",
}


class AirtableProxyTestCase(unittest.TestCase):
    def setUp(self):
        self.app = Flask(__name__)
        self.app.register_blueprint(airtable_proxy.airtable_bp, url_prefix="/api")
        self.client = self.app.test_client()
        env = patch.dict(os.environ, KEYS)
        env.start()
        self.addCleanup(env.stop)


class ProgramsProxyTests(AirtableProxyTestCase):
    def test_forwards_query_and_sort(self):
        with patch("airtable_proxy.airtable_request", return_value=(200, {"records": []})) as request_mock:
            resp = self.client.get(
                "/api/airtable-programs?table=tblSessions&filterByFormula=%7BCity%7D%3D%27Denver%27"
                "&maxRecords=5&sort[0][field]=Start%20Date&sort[0][direction]=asc&sort[1][direction]=desc"
            )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"records": []})
        self.assertEqual(resp.headers["Access-Control-Allow-Origin"], "*")
        args, kwargs = request_mock.call_args
        self.assertEqual(args, ("GET", "tblSessions", "programs-key"))
        self.assertEqual(
            kwargs["params"],
            [
                ("filterByFormula", "{City}='Denver'"),
                ("maxRecords", "5"),
                ("sort[0][field]", "Start Date"),
                ("sort[0][direction]", "asc"),
            ],
        )
        self.assertIsNone(kwargs["record_id"])

    def test_record_lookup(self):
        with patch("airtable_proxy.airtable_request", return_value=(200, {"id": "rec1"})) as request_mock:
            self.client.get("/api/airtable-programs?table=tblSessions&recordId=rec1")
        self.assertEqual(request_mock.call_args[1]["record_id"], "rec1")

    def test_table_required(self):
        resp = self.client.get("/api/airtable-programs")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json(), {"error": "table parameter is required"})

    def test_missing_key(self):
        with patch.dict(os.environ, {"AIRTABLE_PROGRAMS_API_KEY": ""}):
            resp = self.client.get("/api/airtable-programs?table=tblSessions")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json(), {"error": "Server configuration error"})

    def test_upstream_error_keeps_status(self):
        body = {"error": {"type": "NOT_FOUND", "message": "Could not find table"}}
        with patch("airtable_proxy.airtable_request", return_value=(404, body)):
            resp = self.client.get("/api/airtable-programs?table=tblNope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()["error"], "Could not find table")
        self.assertEqual(resp.get_json()["details"], body["error"])

    def test_network_error(self):
        with patch("airtable_proxy.airtable_request", side_effect=requests.ConnectionError("down")):
            resp = self.client.get("/api/airtable-programs?table=tblSessions")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json()["error"], "Internal server error")

    def test_options_preflight(self):
        resp = self.client.open("/api/airtable-programs", method="OPTIONS")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("OPTIONS", resp.headers["Access-Control-Allow-Methods"])
        self.assertEqual(resp.headers["Access-Control-Allow-Headers"], "Content-Type")


class QuizProxyTests(AirtableProxyTestCase):
    def test_post_wraps_fields(self):
        with patch("airtable_proxy.airtable_request", return_value=(200, {"id": "recQ"})) as request_mock:
            resp = self.client.post(
                "/api/airtable-quiz", json={"table": "tblQuiz", "recordId": "ignored", "fields": {"Score": 7}}
            )
        self.assertEqual(resp.status_code, 200)
        args, kwargs = request_mock.call_args
        self.assertEqual(args, ("POST", "tblQuiz", "quiz-key"))
        self.assertIsNone(kwargs["record_id"])
        self.assertEqual(kwargs["body"], {"fields": {"Score": 7}})

    def test_patch_records_batch(self):
        records = [{"id": "rec1", "fields": {"Score": 1}}]
        with patch("airtable_proxy.airtable_request", return_value=(200, {"records": records})) as request_mock:
            self.client.patch("/api/airtable-quiz", json={"table": "tblQuiz", "records": records})
        self.assertEqual(request_mock.call_args[1]["body"], {"records": records})

    def test_patch_other_body_drops_routing_keys(self):
        with patch("airtable_proxy.airtable_request", return_value=(200, {})) as request_mock:
            self.client.patch("/api/airtable-quiz", json={"table": "tblQuiz", "recordId": "rec1", "typecast": True})
        self.assertEqual(request_mock.call_args[1]["body"], {"typecast": True})
        self.assertEqual(request_mock.call_args[1]["record_id"], "rec1")

    def test_table_required_in_body(self):
        self.assertEqual(self.client.post("/api/airtable-quiz", json={}).status_code, 400)


class CouponsProxyTests(AirtableProxyTestCase):
    def test_lookup_by_code(self):
        with patch("airtable_proxy.airtable_request", return_value=(200, {"records": []})) as request_mock:
            resp = self.client.get("/api/airtable-coupons?code=Spring")
        self.assertEqual(resp.status_code, 200)
        args, kwargs = request_mock.call_args
        self.assertEqual(args, ("GET", AIRTABLE_COUPONS_TABLE, "registration-key"))
        self.assertEqual(
            kwargs["params"], [("filterByFormula", "LOWER({Coupon Code})='spring'"), ("maxRecords", "1")]
        )

    def test_code_required(self):
        resp = self.client.get("/api/airtable-coupons")
        self.assertEqual(resp.status_code, 400)

    def test_patch_times_used(self):
        with patch("airtable_proxy.airtable_request", return_value=(200, {"id": "recC"})) as request_mock:
            resp = self.client.patch("/api/airtable-coupons", json={"recordId": "recC", "timesUsed": 3})
        self.assertEqual(resp.status_code, 200)
        kwargs = request_mock.call_args[1]
        self.assertEqual(kwargs["record_id"], "recC")
        self.assertEqual(kwargs["body"], {"fields": {"Times Used": 3}})

    def test_patch_requires_both_fields(self):
        resp = self.client.patch("/api/airtable-coupons", json={"recordId": "recC"})
        self.assertEqual(resp.status_code, 400)

    def test_put_not_allowed(self):
        self.assertEqual(self.client.put("/api/airtable-coupons", json={}).status_code, 405)


class CompaniesAndRegistrationsProxyTests(AirtableProxyTestCase):
    def test_company_search_requires_formula(self):
        self.assertEqual(self.client.get("/api/airtable-companies").status_code, 400)

    def test_company_create_returns_201(self):
        with patch("airtable_proxy.airtable_request", return_value=(200, {"id": "recCo"})) as request_mock:
            resp = self.client.post("/api/airtable-companies", json={"fields": {"Company Name": "Acme"}})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(request_mock.call_args[0][1], AIRTABLE_COMPANIES_TABLE)

    def test_company_create_requires_name(self):
        resp = self.client.post("/api/airtable-companies", json={"fields": {}})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json(), {"error": "Missing required field: Company Name"})

    def test_registration_requires_links(self):
        resp = self.client.post("/api/airtable-registrations", json={"fields": {"Contact": ["recA"]}})
        self.assertEqual(resp.status_code, 400)

    def test_registration_create(self):
        fields = {"Contact": ["recA"], "Company": ["recB"], "Program Instance": ["recS"]}
        with patch("airtable_proxy.airtable_request", return_value=(200, {"id": "recR"})) as request_mock:
            resp = self.client.post("/api/airtable-registrations", json={"fields": fields})
        self.assertEqual(resp.status_code, 201)
        args, kwargs = request_mock.call_args
        self.assertEqual(args, ("POST", AIRTABLE_REGISTRATIONS_TABLE, "programs-key"))
        self.assertEqual(kwargs["body"], {"fields": fields})

    def test_upstream_error_body_forwarded(self):
        body = {"error": {"type": "INVALID_VALUE_FOR_COLUMN"}}
        fields = {"Contact": ["recA"], "Company": ["recB"], "Program Instance": ["recS"]}
        with patch("airtable_proxy.airtable_request", return_value=(422, body)):
            resp = self.client.post("/api/airtable-registrations", json={"fields": fields})
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.get_json(), body)


if __name__ == "__main__":
    unittest.main()
