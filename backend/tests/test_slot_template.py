import unittest

from schemas.scheduling import SchedulingConstraints
from solver.entities import SessionKind
from solver.slot_template import build_slot_template


class TestSlotTemplate(unittest.TestCase):

    def setUp(self):
        self.template = build_slot_template(SchedulingConstraints())

    def test_four_blocks_per_day(self):
        """Breaks and the reserved hour split the day into four blocks"""
        spans = [(b.start_min, b.end_min) for b in self.template.blocks]
        self.assertEqual(spans, [(540, 660), (675, 795), (840, 960), (960, 1020)])

    def test_weekly_grid_has_35_theory_cells(self):
        self.assertEqual(self.template.weekly_cells, 35)
        monday = [s.start for s in self.template.theory_slots if s.day == "MON"]
        self.assertEqual(monday, ["09:00", "10:00", "11:15", "12:15", "14:00", "15:00", "16:00"])

    def test_three_lab_slots_per_day(self):
        self.assertEqual(len(self.template.lab_slots), 15)
        friday = [(s.start, s.end) for s in self.template.lab_slots if s.day == "FRI"]
        self.assertEqual(friday, [("09:00", "11:00"), ("11:15", "13:15"), ("14:00", "16:00")])

    def test_lab_preference_order(self):
        """Afternoon lab slot is offered first"""
        slots = self.template.lab_slots_for_day("TUE", ("14:00", "11:15", "09:00"))
        self.assertEqual([s.start for s in slots], ["14:00", "11:15", "09:00"])

        partial = self.template.lab_slots_for_day("TUE", ("11:15",))
        self.assertEqual([s.start for s in partial], ["11:15", "09:00", "14:00"])

    def test_lab_window_must_avoid_breaks(self):
        self.assertTrue(self.template.is_valid_session_window(SessionKind.LAB, "14:00", "16:00"))
        self.assertFalse(self.template.is_valid_session_window(SessionKind.LAB, "10:00", "12:00"))
        self.assertFalse(self.template.is_valid_session_window(SessionKind.LAB, "12:30", "14:30"))
        self.assertFalse(self.template.is_valid_session_window(SessionKind.LAB, "16:00", "18:00"))

    def test_lab_may_run_into_reserved_hour(self):
        """The reserved-hour boundary is not a break"""
        self.assertTrue(self.template.is_valid_session_window(SessionKind.LAB, "15:00", "17:00"))

    def test_theory_window_across_break_needs_effective_minutes(self):
        self.assertEqual(self.template.effective_teaching_minutes("10:30", "11:30"), 45)
        self.assertTrue(self.template.is_valid_session_window(SessionKind.THEORY, "10:30", "11:30"))
        self.assertFalse(self.template.is_valid_session_window(SessionKind.THEORY, "13:00", "14:00"))

    def test_template_is_idempotent(self):
        again = build_slot_template(SchedulingConstraints())
        self.assertEqual(self.template, again)

    def test_custom_hours(self):
        """A shorter day drops the reserved-hour block"""
        template = build_slot_template(SchedulingConstraints(college_end="16:00"))
        self.assertEqual(len(template.blocks), 3)
        self.assertEqual(template.weekly_cells, 30)


if __name__ == "__main__":
    unittest.main()
