import unittest

from fixtures import BATCH_A, BATCH_B, entry
from solver.entities import COMMON, EntryKind
from solver.schedule_index import ScheduleIndex


class TestScope(unittest.TestCase):

    def test_common_intersects_every_batch(self):
        self.assertTrue(COMMON.intersects(BATCH_A))
        self.assertTrue(BATCH_B.intersects(COMMON))
        self.assertTrue(BATCH_A.intersects(BATCH_A))
        self.assertFalse(BATCH_A.intersects(BATCH_B))


class TestScheduleIndex(unittest.TestCase):

    def setUp(self):
        self.index = ScheduleIndex()
        self.lecture = self.index.add(entry("MON", "09:00", "10:00", subject_id="DS", professor_id="P1"))
        self.lab = self.index.add(
            entry("MON", "14:00", "16:00", EntryKind.LAB, subject_id="OS", professor_id="P2", scope=BATCH_A)
        )

    def test_lookup_by_slot_and_day(self):
        self.assertEqual(len(self.index), 2)
        self.assertEqual(self.index.at("MON", "09:00"), [self.lecture])
        self.assertEqual(self.index.overlapping("MON", "15:00", "17:00"), [self.lab])
        self.assertEqual(self.index.class_load("MON"), 2)
        self.assertEqual(self.index.class_load("TUE"), 0)

    def test_common_entry_blocks_every_batch(self):
        self.assertFalse(self.index.scope_free(BATCH_A, "MON", "09:00", "11:00"))
        self.assertFalse(self.index.scope_free(BATCH_B, "MON", "09:30", "10:30"))

    def test_batch_entry_blocks_only_its_batch_and_common(self):
        self.assertFalse(self.index.scope_free(BATCH_A, "MON", "14:00", "16:00"))
        self.assertTrue(self.index.scope_free(BATCH_B, "MON", "14:00", "16:00"))
        self.assertFalse(self.index.scope_free(COMMON, "MON", "15:00", "16:00"))

    def test_professor_availability(self):
        self.assertFalse(self.index.professor_free("P1", "MON", "09:30", "10:30"))
        self.assertTrue(self.index.professor_free("P1", "MON", "10:00", "11:00"))
        self.assertTrue(self.index.professor_free(None, "MON", "09:00", "10:00"))

    def test_external_entries_only_affect_professors(self):
        busy = entry("TUE", "09:00", "11:00", professor_id="P1", branch_id="ECE")
        index = ScheduleIndex(external=[busy])
        self.assertFalse(index.professor_free("P1", "TUE", "10:00", "11:00"))
        self.assertTrue(index.scope_free(COMMON, "TUE", "10:00", "11:00"))
        self.assertEqual(len(index), 0)
        self.assertEqual(index.entries(), [])

    def test_subject_lookups(self):
        self.assertTrue(self.index.subject_overlaps("DS", EntryKind.THEORY, "MON", "09:00", "11:00"))
        self.assertFalse(self.index.subject_overlaps("DS", EntryKind.THEORY, "TUE", "09:00", "11:00"))
        self.assertEqual(self.index.labs_for("OS", BATCH_A.batch_id), [self.lab])
        self.assertEqual(self.index.labs_for("OS", BATCH_B.batch_id), [])

    def test_remove(self):
        self.index.remove(self.lecture)
        self.assertEqual(len(self.index), 1)
        self.assertNotIn(self.lecture, self.index)
        self.assertTrue(self.index.professor_free("P1", "MON", "09:00", "10:00"))
        self.assertEqual(self.index.subject_entries("DS", EntryKind.THEORY), [])

    def test_entries_sorted_by_day_then_time(self):
        self.index.add(entry("MON", "11:15", "12:15", subject_id="CN"))
        self.index.add(entry("TUE", "09:00", "10:00", subject_id="CN"))
        order = [(e.day, e.start) for e in self.index.entries()]
        self.assertEqual(order, [("MON", "09:00"), ("MON", "11:15"), ("MON", "14:00"), ("TUE", "09:00")])


if __name__ == "__main__":
    unittest.main()
