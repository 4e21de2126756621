import os
import unittest
from unittest import mock

from pydantic import ValidationError

from core.config import Settings
from schemas.scheduling import SchedulingConstraints


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            s = Settings(_env_file=None)
        self.assertEqual(s.environment, "development")
        self.assertEqual(s.lab_capacity, 5)
        self.assertTrue(s.database_url.startswith("sqlite:///"))

        c = s.scheduling_constraints()
        self.assertEqual(c, SchedulingConstraints())
        self.assertEqual(c.lab_start_preference, ("14:00", "11:15", "09:00"))

    def test_env_aliases(self):
        env = {"TT_LAB_CAPACITY": "7", "ENVIRONMENT": " Production ", "LIBRARY_DAY": "friday"}
        with mock.patch.dict(os.environ, env, clear=True):
            s = Settings(_env_file=None)
        self.assertEqual(s.lab_capacity, 7)
        self.assertEqual(s.environment, "production")
        self.assertEqual(s.library_day, "FRI")

    def test_time_normalisation(self):
        s = Settings(_env_file=None, college_start="9:00", lab_start_preference="14:00, 9:00")
        self.assertEqual(s.college_start, "09:00")
        self.assertEqual(s.scheduling_constraints().lab_start_preference, ("14:00", "09:00"))

    def test_invalid_values(self):
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, lab_capacity=0)
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, project_day="SUN")
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, recess_start="25:00")

    def test_constraints_reject_breaks_outside_day(self):
        with self.assertRaises(ValidationError):
            SchedulingConstraints(tea_break_start="08:00")
        with self.assertRaises(ValidationError):
            SchedulingConstraints(min_weekly_lectures=4, max_weekly_lectures=3)


if __name__ == "__main__":
    unittest.main()
