import unittest
from datetime import date
from unittest.mock import patch

import requests

import coupons
from airtable import AirtableError
from pricing import reprice
from wizard_state import WizardState

ERL = "Certificate in Employee Relations Law"
BENEFITS = "Certificate in Employee Benefits Law"
TODAY = date(2025, 3, 1)


def _state(program=ERL, blocks=None):
    state = WizardState(program=program, attendance_blocks=list(blocks or []))
    reprice(state)
    return state


def _remote(**fields):
    base = {"Coupon Code": "SPRING", "Active?": True, "Discount Amount": 250, "Discount Type": "Flat"}
    base.update(fields)
    return {"id": "recCOUPON", "fields": base}


class StaticCouponTests(unittest.TestCase):
    def test_pp500_on_full_program(self):
        state = _state()
        result = coupons.apply_coupon(state, " pp500 ", lookup=self.fail)
        self.assertTrue(result.ok)
        self.assertEqual(result.message, "Coupon applied! You saved $500.00")
        self.assertEqual(state.coupon_code, "PP500")
        self.assertEqual(state.coupon_discount, 500)
        self.assertEqual(state.amount_due, 1875)

    def test_pp500_rejects_block_purchase(self):
        state = _state(blocks=["Block 3"])
        result = coupons.apply_coupon(state, "PP500", lookup=self.fail)
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "This coupon is only valid for full program registrations")
        self.assertEqual(state.coupon_code, "")
        self.assertEqual(state.amount_due, 575)

    def test_pp500_rejects_other_programs(self):
        state = _state(program="Certificate in Workplace Investigations")
        result = coupons.apply_coupon(state, "PP500", lookup=self.fail)
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "This coupon is not valid for Certificate in Workplace Investigations")

    def test_block10_percent_off_blocks(self):
        state = _state(blocks=["Block 1", "Block 3"])
        result = coupons.apply_coupon(state, "BLOCK10", lookup=self.fail)
        self.assertTrue(result.ok)
        self.assertEqual(state.base_price, 1950)
        self.assertEqual(state.coupon_discount, 195)
        self.assertEqual(state.amount_due, 1755)

    def test_block10_rejects_full(self):
        result = coupons.apply_coupon(_state(), "BLOCK10", lookup=self.fail)
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "This coupon is only valid for block registrations")

    def test_alumni_any_program(self):
        state = _state(program="Advanced Certificate in Employee Benefits Law")
        self.assertTrue(coupons.apply_coupon(state, "ALUMNI300", lookup=self.fail).ok)
        self.assertEqual(state.amount_due, 1275)


class ToggleAndInputTests(unittest.TestCase):
    def test_same_code_twice_removes_it(self):
        state = _state()
        coupons.apply_coupon(state, "PP500")
        result = coupons.apply_coupon(state, "pp500")
        self.assertTrue(result.removed)
        self.assertEqual(result.message, "Coupon removed")
        self.assertEqual(state.coupon_discount, 0)
        self.assertEqual(state.coupon_code, "")
        self.assertEqual(state.amount_due, 2375)

    def test_empty_code(self):
        result = coupons.apply_coupon(_state(), "   ")
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "Please enter a coupon code")

    def test_requires_program(self):
        result = coupons.apply_coupon(WizardState(), "PP500")
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "Please select a program before applying a coupon")


class RemoteCouponTests(unittest.TestCase):
    def test_valid_flat_coupon(self):
        state = _state()
        result = coupons.apply_coupon(state, "spring", lookup=lambda code: _remote(), today=TODAY)
        self.assertTrue(result.ok)
        self.assertEqual(state.coupon_source, "remote")
        self.assertEqual(state.coupon_record_id, "recCOUPON")
        self.assertEqual(state.amount_due, 2125)

    def test_percent_coupon_rounds(self):
        state = _state()
        record = _remote(**{"Discount Type": "Percentage", "Discount Amount": 15})
        coupons.apply_coupon(state, "SPRING", lookup=lambda code: record, today=TODAY)
        self.assertEqual(state.coupon_discount, 356)
        self.assertEqual(state.amount_due, 2019)

    def test_percent_coupon_rounds_half_up(self):
        state = _state(program=BENEFITS, blocks=["Block 2", "Block 3"])
        self.assertEqual(state.base_price, 1550)
        record = _remote(**{"Discount Type": "Percent", "Discount Amount": 15})
        coupons.apply_coupon(state, "SPRING", lookup=lambda code: record, today=TODAY)
        self.assertEqual(state.coupon_discount, 233)
        self.assertEqual(state.amount_due, 1317)

    def test_discount_percent_field(self):
        state = _state()
        record = _remote(**{"Discount Type": None, "Discount Amount": None, "Discount Percent": 20})
        result = coupons.apply_coupon(state, "SPRING", lookup=lambda code: record, today=TODAY)
        self.assertTrue(result.ok)
        self.assertEqual(result.message, "Coupon applied! You saved 20% off")
        self.assertEqual(state.coupon_kind, coupons.PERCENT)
        self.assertEqual(state.coupon_discount, 475)
        self.assertEqual(state.amount_due, 1900)

    def test_discount_percent_wins_over_amount(self):
        record = _remote(**{"Discount Amount": 100, "Discount Percent": 10})
        self.assertEqual(coupons.remote_coupon_terms(record["fields"]), (coupons.PERCENT, 10.0))
        record = _remote(**{"Discount Amount": 100, "Discount Percent": 0})
        self.assertEqual(coupons.remote_coupon_terms(record["fields"]), (coupons.FLAT, 100.0))

    def test_discount_clamped_to_base(self):
        state = _state(blocks=["Block 3"])
        record = _remote(**{"Discount Amount": 5000})
        coupons.apply_coupon(state, "SPRING", lookup=lambda code: record, today=TODAY)
        self.assertEqual(state.coupon_discount, 575)
        self.assertEqual(state.amount_due, 0)

    def test_expires_today_is_still_valid(self):
        record = _remote(**{"Expiration Date": "2025-03-01"})
        self.assertTrue(coupons.apply_coupon(_state(), "SPRING", lookup=lambda c: record, today=TODAY).ok)

    def test_expired_yesterday(self):
        record = _remote(**{"Expiration Date": "2025-02-28"})
        result = coupons.apply_coupon(_state(), "SPRING", lookup=lambda c: record, today=TODAY)
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "This coupon has expired")

    def test_inactive(self):
        record = _remote(**{"Active?": False})
        result = coupons.apply_coupon(_state(), "SPRING", lookup=lambda c: record, today=TODAY)
        self.assertEqual(result.message, "This coupon is no longer active")

    def test_usage_limit(self):
        record = _remote(**{"Max Uses": 10, "Times Used": 10})
        result = coupons.apply_coupon(_state(), "SPRING", lookup=lambda c: record, today=TODAY)
        self.assertEqual(result.message, "This coupon has reached its usage limit")

    def test_unknown_code(self):
        state = _state()
        result = coupons.apply_coupon(state, "NOPE", lookup=lambda c: None, today=TODAY)
        self.assertEqual(result.message, coupons.INVALID_CODE)
        self.assertEqual(state.amount_due, 2375)

    def test_lookup_failure_keeps_previous_coupon(self):
        state = _state()
        coupons.apply_coupon(state, "PP500")

        def boom(code):
            raise requests.ConnectionError("down")

        result = coupons.apply_coupon(state, "SPRING", lookup=boom, today=TODAY)
        self.assertFalse(result.ok)
        self.assertEqual(result.message, coupons.LOOKUP_FAILED)
        self.assertEqual(state.coupon_code, "PP500")
        self.assertEqual(state.amount_due, 1875)

    def test_find_remote_coupon_queries_lowercase_code(self):
        records = [{"id": "recX", "fields": {"Coupon Code": "Spring"}}]
        with patch("coupons.require_setting", return_value="key"), \
                patch("coupons.list_records", return_value=records) as list_mock:
            record = coupons.find_remote_coupon("SPRING")
        self.assertEqual(record["id"], "recX")
        _, kwargs = list_mock.call_args
        self.assertEqual(kwargs["filterByFormula"], "LOWER({Coupon Code})='spring'")
        self.assertEqual(kwargs["maxRecords"], 1)


class ComputeDiscountTests(unittest.TestCase):
    def test_percent_halves_round_up(self):
        self.assertEqual(coupons.compute_discount(coupons.PERCENT, 15, 1550), 233)
        self.assertEqual(coupons.compute_discount(coupons.PERCENT, 10, 575), 58)
        self.assertEqual(coupons.compute_discount(coupons.PERCENT, 10, 2125), 213)

    def test_flat_is_clamped(self):
        self.assertEqual(coupons.compute_discount(coupons.FLAT, 800, 575), 575)


class RefreshCouponTests(unittest.TestCase):
    def test_static_coupon_dropped_when_no_longer_eligible(self):
        state = _state(blocks=["Block 3"])
        coupons.apply_coupon(state, "BLOCK10")
        state.attendance_blocks = []
        reprice(state)
        message = coupons.refresh_coupon(state)
        self.assertIn("BLOCK10", message)
        self.assertEqual(state.coupon_code, "")
        self.assertEqual(state.amount_due, 2375)

    def test_percent_coupon_scales_with_base(self):
        state = _state(blocks=["Block 1", "Block 3"])
        coupons.apply_coupon(state, "BLOCK10")
        state.attendance_blocks = ["Block 3"]
        reprice(state)
        self.assertIsNone(coupons.refresh_coupon(state))
        self.assertEqual(state.coupon_discount, 58)
        self.assertEqual(state.amount_due, 575 - state.coupon_discount)


class RecordCouponUseTests(unittest.TestCase):
    def test_increments_times_used(self):
        state = _state()
        state.coupon_source, state.coupon_record_id, state.coupon_code = "remote", "recCOUPON", "SPRING"
        with patch("coupons.require_setting", return_value="key"), \
                patch("coupons.get_record", return_value={"fields": {"Times Used": 4}}), \
                patch("coupons.update_record") as update_mock:
            self.assertTrue(coupons.record_coupon_use(state))
        update_mock.assert_called_once_with(coupons.AIRTABLE_COUPONS_TABLE, "recCOUPON", {"Times Used": 5}, "key")

    def test_failure_is_logged_not_raised(self):
        state = _state()
        state.coupon_source, state.coupon_record_id, state.coupon_code = "remote", "recCOUPON", "SPRING"
        with patch("coupons.require_setting", return_value="key"), \
                patch("coupons.get_record", side_effect=AirtableError(404, "NOT_FOUND")):
            with self.assertLogs("coupons", level="WARNING"):
                self.assertFalse(coupons.record_coupon_use(state))

    def test_static_coupon_is_not_tracked(self):
        state = _state()
        coupons.apply_coupon(state, "PP500")
        with patch("coupons.get_record") as get_mock:
            self.assertFalse(coupons.record_coupon_use(state))
        get_mock.assert_not_called()


if __name__ == "__main__":
    unittest.main()
