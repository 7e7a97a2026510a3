import unittest

import steps
from wizard_state import WizardState


class DetermineStepsTests(unittest.TestCase):
    def test_no_parameters_keeps_every_step(self):
        self.assertEqual(
            steps.determine_steps({}),
            ["format", "program", "session", "blocks", "contact", "payment"],
        )

    def test_fully_resolved_link_leaves_session_contact_payment(self):
        result = steps.determine_steps(
            {"format": "in-person", "program": "employee-relations-law", "blocks": "full"}
        )
        self.assertEqual(result, ["session", "contact", "payment"])

    def test_block_list_resolves_blocks_step(self):
        result = steps.determine_steps(
            {"format": "virtual", "program": "employee-benefits-law", "blocks": "Block 1,3"}
        )
        self.assertEqual(result, ["session", "contact", "payment"])
        answers = steps.resolve_url_params(
            {"format": "virtual", "program": "employee-benefits-law", "blocks": "Block 1,3"}
        )
        self.assertEqual(answers["blocks"], ["Block 1", "Block 3"])

    def test_unknown_block_keeps_blocks_step(self):
        result = steps.determine_steps(
            {"format": "in-person", "program": "employee-relations-law", "blocks": "Block 9"}
        )
        self.assertIn("blocks", result)

    def test_on_demand_drops_session_and_blocks(self):
        result = steps.determine_steps({"format": "on-demand", "program": "employee-relations-law"})
        self.assertEqual(result, ["contact", "payment"])

    def test_unknown_slugs_are_not_omitted(self):
        result = steps.determine_steps({"format": "hybrid", "program": "nope"})
        self.assertEqual(result[:2], ["format", "program"])

    def test_session_id_is_deferred_to_fetch(self):
        result = steps.determine_steps({"session": "rec123"})
        self.assertNotIn("session", result)
        self.assertEqual(result[-2:], ["contact", "payment"])

    def test_program_without_blocks_has_no_blocks_step(self):
        result = steps.determine_steps({"program": "workplace-investigations"})
        self.assertEqual(result, ["format", "session", "contact", "payment"])

    def test_contact_and_payment_always_last(self):
        for params in ({}, {"format": "on-demand"}, {"program": "strategic-hr", "blocks": "2"}):
            self.assertEqual(steps.determine_steps(params)[-2:], ["contact", "payment"])


class StepsForStateTests(unittest.TestCase):
    def test_switching_to_on_demand_removes_blocks(self):
        state = WizardState(format="In-Person", program="Certificate in Employee Relations Law")
        before = steps.steps_for_state(state)
        self.assertIn("blocks", before)

        state.format = "On-Demand"
        after = steps.steps_for_state(state)
        self.assertNotIn("blocks", after)
        self.assertNotIn("session", after)
        self.assertEqual(steps.diff_steps(before, after), {"added": [], "removed": ["session", "blocks"]})

    def test_choosing_block_program_adds_blocks(self):
        state = WizardState(format="Virtual", program="Certificate in Workplace Investigations")
        before = steps.steps_for_state(state)
        state.program = "Certificate in Strategic HR Leadership"
        after = steps.steps_for_state(state)
        self.assertEqual(steps.diff_steps(before, after)["added"], ["blocks"])

    def test_prefilled_steps_stay_omitted(self):
        state = WizardState(
            format="In-Person",
            program="Certificate in Employee Benefits Law",
            prefilled=["format", "program"],
        )
        self.assertEqual(steps.steps_for_state(state), ["session", "blocks", "contact", "payment"])


class NavigationTests(unittest.TestCase):
    def test_next_and_previous_stay_in_bounds(self):
        plan = ["session", "contact", "payment"]
        self.assertEqual(steps.next_step(plan, "session"), "contact")
        self.assertEqual(steps.next_step(plan, "payment"), "payment")
        self.assertEqual(steps.previous_step(plan, "session"), "session")
        self.assertEqual(steps.previous_step(plan, "missing"), "session")

    def test_step_indicator_statuses(self):
        state = WizardState(steps=["format", "program", "contact", "payment"], current_step="program")
        rows = steps.step_indicator(state)
        self.assertEqual([r["status"] for r in rows], ["completed", "active", "pending", "pending"])
        self.assertEqual(rows[2]["label"], "Your Info")
        self.assertEqual(rows[0]["number"], 1)


if __name__ == "__main__":
    unittest.main()
