import unittest

from fixtures import BATCH_A, entry
from solver.entities import EntryKind
from solver.reconciler import Reconciler
from solver.schedule_index import ScheduleIndex


class TestReconciler(unittest.TestCase):

    def test_theory_on_library_hour_removed(self):
        """A lecture at FRI 16:00 is dropped in favour of the library hour"""
        index = ScheduleIndex()
        library = index.add(entry("FRI", "16:00", "17:00", EntryKind.LIBRARY))
        lecture = index.add(entry("FRI", "16:00", "17:00", subject_id="DS", professor_id="P1"))

        fixes = Reconciler(index).run()

        self.assertEqual(len(fixes), 1)
        self.assertIs(fixes[0].removed, lecture)
        self.assertIs(fixes[0].kept, library)
        self.assertNotIn(lecture, index)
        self.assertIn(library, index)

    def test_theory_partly_overlapping_project_hour_removed(self):
        index = ScheduleIndex()
        index.add(entry("THU", "16:00", "17:00", EntryKind.PROJECT))
        lecture = index.add(entry("THU", "15:30", "16:30", subject_id="DS"))

        fixes = Reconciler(index).run()
        self.assertEqual([f.removed for f in fixes], [lecture])

    def test_lab_kept_over_lecture(self):
        index = ScheduleIndex()
        lab = index.add(entry("MON", "14:00", "16:00", EntryKind.LAB, subject_id="OS", scope=BATCH_A))
        lecture = index.add(entry("MON", "15:00", "16:00", subject_id="DS"))

        fixes = Reconciler(index).run()

        self.assertEqual(len(fixes), 1)
        self.assertIs(fixes[0].removed, lecture)
        self.assertIn(lab, index)
        self.assertIn("Batch A", fixes[0].cause)

    def test_clean_schedule_untouched(self):
        index = ScheduleIndex()
        index.add(entry("MON", "11:00", "11:15", EntryKind.BREAK))
        index.add(entry("MON", "09:00", "10:00", subject_id="DS"))
        index.add(entry("MON", "14:00", "16:00", EntryKind.LAB, subject_id="OS", scope=BATCH_A))

        self.assertEqual(Reconciler(index).run(), [])
        self.assertEqual(len(index), 3)


if __name__ == "__main__":
    unittest.main()
