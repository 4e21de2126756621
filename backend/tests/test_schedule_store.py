import unittest

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from core.database import get_engine, init_db, table_exists
from fixtures import BRANCH, CONSTRAINTS, SEMESTER, batches, entry, professor, subject
from models.timetable_conflict import TimetableConflict
from models.timetable_entry import TimetableEntry
from schemas.scheduling import GenerateRequest
from services.generation_service import generate_and_commit
from services.schedule_store import (
    LabCapacityExceededError,
    ScheduleRejectedError,
    audit_schedule,
    committed_lab_holdings,
    committed_lab_usage,
    load_external_entries,
    load_schedule,
    replace_schedule,
)
from solver.engine import GenerationResult, generate
from solver.entities import EntryKind
from solver.lab_capacity import LabCapacityLedger


SUBJECTS = [subject("DS", lectures=3), subject("OS", "BOTH", labs=2)]
PROFESSORS = [professor("P1", "DS"), professor("P2", "OS")]


class StoreTestCase(unittest.TestCase):

    def setUp(self):
        self.engine = get_engine("sqlite://")
        init_db(self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _count(self, model):
        return self.db.execute(select(func.count()).select_from(model)).scalar_one()


class TestScheduleStore(StoreTestCase):

    def test_tables_created(self):
        self.assertTrue(table_exists(self.db, "timetable_entries"))
        self.assertTrue(table_exists(self.db, "timetable_conflicts"))

    def test_replace_and_load(self):
        result = generate(BRANCH, SEMESTER, SUBJECTS, PROFESSORS, batches(), CONSTRAINTS)
        written = replace_schedule(self.db, result, capacity=CONSTRAINTS.lab_capacity)

        self.assertEqual(written, len(result.entries))
        loaded = load_schedule(self.db, BRANCH, SEMESTER)
        self.assertEqual(sorted(e.id for e in loaded), sorted(e.id for e in result.entries))
        labs = [e for e in loaded if e.kind is EntryKind.LAB]
        self.assertEqual({e.scope.label for e in labs}, {"A", "B"})
        self.assertEqual(self._count(TimetableConflict), len(result.conflicts))

    def test_regeneration_replaces_everything(self):
        first = generate(BRANCH, SEMESTER, SUBJECTS, PROFESSORS, batches(), CONSTRAINTS)
        replace_schedule(self.db, first)
        second = generate(BRANCH, SEMESTER, SUBJECTS, PROFESSORS, batches(), CONSTRAINTS)
        replace_schedule(self.db, second)

        loaded = load_schedule(self.db, BRANCH, SEMESTER)
        self.assertEqual(len(loaded), len(second.entries))
        self.assertEqual({e.id for e in loaded}, {e.id for e in second.entries})
        self.assertEqual(self._count(TimetableEntry), len(second.entries))

    def test_rejected_result_not_persisted(self):
        rejected = GenerationResult(branch_id=BRANCH, semester=SEMESTER, accepted=False)
        with self.assertRaises(ScheduleRejectedError):
            replace_schedule(self.db, rejected)
        self.assertEqual(self._count(TimetableEntry), 0)

    def test_commit_time_capacity_recheck(self):
        for i in range(5):
            self.db.add(
                TimetableEntry(
                    branch_id=f"BR{i}",
                    semester=1,
                    batch_id=f"BR{i}-A",
                    batch_label="A",
                    subject_id="PHY",
                    day_of_week="MON",
                    start_time="14:00",
                    end_time="16:00",
                    slot_type="LAB",
                )
            )
        self.db.commit()

        lab = entry("MON", "14:00", "16:00", EntryKind.LAB, subject_id="OS")
        result = GenerationResult(branch_id=BRANCH, semester=SEMESTER, entries=[lab], accepted=True)
        with self.assertRaises(LabCapacityExceededError) as ctx:
            replace_schedule(self.db, result, capacity=5)

        self.assertEqual(ctx.exception.overflow, {("MON", "14:00", "16:00"): 6})
        self.assertEqual(load_schedule(self.db, BRANCH, SEMESTER), [])

    def test_lab_usage_and_external_entries(self):
        result = generate(BRANCH, SEMESTER, SUBJECTS, PROFESSORS, batches(), CONSTRAINTS)
        replace_schedule(self.db, result)

        usage = committed_lab_usage(self.db)
        self.assertEqual(sum(usage.values()), len([e for e in result.entries if e.kind is EntryKind.LAB]))
        self.assertEqual(committed_lab_usage(self.db, exclude=(BRANCH, SEMESTER)), {})
        self.assertEqual(set(committed_lab_holdings(self.db)), {(BRANCH, SEMESTER)})

        self.assertEqual(load_external_entries(self.db, BRANCH, SEMESTER), [])
        external = load_external_entries(self.db, "ECE", SEMESTER)
        self.assertTrue(external)
        self.assertTrue(all(e.kind.is_class and e.professor_id for e in external))

    def test_audit_persisted_schedule(self):
        result = generate(BRANCH, SEMESTER, SUBJECTS, PROFESSORS, batches(), CONSTRAINTS)
        replace_schedule(self.db, result)

        conflicts = audit_schedule(self.db, BRANCH, SEMESTER, CONSTRAINTS)
        self.assertFalse(any(c.is_blocking for c in conflicts))

    def test_audit_of_missing_schedule_reports_empty(self):
        conflicts = audit_schedule(self.db, "MECH", 2, CONSTRAINTS)
        self.assertEqual([c.kind.value for c in conflicts if c.is_blocking], ["EMPTY_SCHEDULE"])


class TestGenerationService(StoreTestCase):

    def _request(self, branch_id):
        return GenerateRequest(
            branch_id=branch_id,
            semester=SEMESTER,
            subjects=SUBJECTS,
            professors=PROFESSORS,
            batches=batches(branch_id=branch_id),
        )

    def test_generate_and_commit(self):
        ledger = LabCapacityLedger(CONSTRAINTS.lab_capacity)
        response = generate_and_commit(self.db, self._request(BRANCH), ledger, constraints=CONSTRAINTS)

        self.assertEqual(response.status, "ACCEPTED")
        self.assertEqual(response.entries_written, len(response.entries))
        self.assertEqual(len(load_schedule(self.db, BRANCH, SEMESTER)), response.entries_written)
        self.assertEqual(ledger.owners(), {(BRANCH, SEMESTER)})

    def test_professor_shared_across_cohorts(self):
        ledger = LabCapacityLedger(CONSTRAINTS.lab_capacity)
        generate_and_commit(self.db, self._request("CSE"), ledger, constraints=CONSTRAINTS)
        response = generate_and_commit(self.db, self._request("ECE"), ledger, constraints=CONSTRAINTS)
        self.assertEqual(response.status, "ACCEPTED")

        combined = load_schedule(self.db, "CSE", SEMESTER) + load_schedule(self.db, "ECE", SEMESTER)
        for pid in ("P1", "P2"):
            mine = [e for e in combined if e.professor_id == pid]
            for i, a in enumerate(mine):
                for b in mine[i + 1:]:
                    self.assertFalse(a.overlaps(b), f"{a.label()} overlaps {b.label()}")

    def test_capacity_held_across_cohorts(self):
        ledger = LabCapacityLedger(1)
        constraints = CONSTRAINTS.model_copy(update={"lab_capacity": 1})
        for branch_id in ("CSE", "ECE", "MECH"):
            response = generate_and_commit(self.db, self._request(branch_id), ledger, constraints=constraints)
            self.assertEqual(response.status, "ACCEPTED")

        usage = committed_lab_usage(self.db)
        self.assertTrue(usage)
        self.assertTrue(all(count <= 1 for count in usage.values()))

    def test_rejected_request_writes_nothing(self):
        request = GenerateRequest(
            branch_id=BRANCH,
            semester=SEMESTER,
            subjects=[subject("OS", "LAB", labs=2)],
            professors=[professor("P2", "OS")],
        )
        ledger = LabCapacityLedger(1)
        for day in ("MON", "TUE", "WED", "THU", "FRI"):
            for start, end in (("09:00", "11:00"), ("11:15", "13:15"), ("14:00", "16:00")):
                ledger.load_committed((f"X-{day}-{start}", 1), [(day, start, end)])

        response = generate_and_commit(self.db, request, ledger, constraints=CONSTRAINTS)
        self.assertEqual(response.status, "REJECTED")
        self.assertEqual(response.entries_written, 0)
        self.assertEqual(self._count(TimetableEntry), 0)


if __name__ == "__main__":
    unittest.main()
