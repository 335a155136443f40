"""Round lifecycle: transition table, legacy status mapping, read view."""

import unittest
from datetime import datetime, timezone

from movienight.errors import ValidationError
from movienight.models.tables import Round
from movienight.services.round_state import (
    RoundStatus, RoundView, can_transition, normalize_status, predecessors, require_transition,
)


class NormalizeStatusTest(unittest.TestCase):

    def test_legacy_picked_reads_as_selected(self):
        self.assertEqual(normalize_status("picked"), "selected")

    def test_current_statuses_pass_through(self):
        for status in RoundStatus:
            self.assertEqual(normalize_status(status.value), status.value)

    def test_view_normalizes_without_touching_row(self):
        row = Round(
            round_id="r1", group_id="g1", status="picked", started_by="alice",
            attendees=None, created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
        view = RoundView.from_row(row)
        self.assertEqual(view.status, "selected")
        self.assertEqual(row.status, "picked")
        self.assertEqual(view.to_dict()["status"], "selected")


class TransitionTest(unittest.TestCase):

    def test_main_path(self):
        self.assertTrue(can_transition("voting", RoundStatus.CLOSED))
        self.assertTrue(can_transition("closed", RoundStatus.SELECTED))
        self.assertTrue(can_transition("selected", RoundStatus.WATCHED))
        self.assertTrue(can_transition("watched", RoundStatus.RATED))

    def test_direct_pick_from_voting(self):
        self.assertTrue(can_transition("voting", RoundStatus.SELECTED))

    def test_discard_only_before_pick(self):
        self.assertTrue(can_transition("voting", RoundStatus.DISCARDED))
        self.assertTrue(can_transition("closed", RoundStatus.DISCARDED))
        self.assertFalse(can_transition("selected", RoundStatus.DISCARDED))

    def test_terminal_states(self):
        for target in RoundStatus:
            self.assertFalse(can_transition("rated", target))
            self.assertFalse(can_transition("discarded", target))

    def test_legacy_status_uses_selected_transitions(self):
        self.assertTrue(can_transition("picked", RoundStatus.WATCHED))
        self.assertFalse(can_transition("picked", RoundStatus.SELECTED))

    def test_unknown_status_cannot_move(self):
        self.assertFalse(can_transition("archived", RoundStatus.CLOSED))

    def test_rejection_names_required_predecessor(self):
        with self.assertRaises(ValidationError) as ctx:
            require_transition("voting", RoundStatus.RATED)
        self.assertEqual(ctx.exception.extra["required_status"], ["watched"])
        self.assertEqual(ctx.exception.extra["status"], "voting")
        self.assertIn("'watched'", ctx.exception.message)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_predecessors_in_lifecycle_order(self):
        self.assertEqual(predecessors(RoundStatus.SELECTED), [RoundStatus.VOTING, RoundStatus.CLOSED, RoundStatus.WATCHED])


if __name__ == "__main__":
    unittest.main()
