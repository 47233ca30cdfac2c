import tempfile
import unittest

from sqlmodel import select

from backend.app.db import create_db_engine, init_db, open_session
from backend.app.models import StaffUser
from backend.app.results import Err, ErrorKind, Ok, not_found, service_boundary, validation_error


@service_boundary
def _add_then(session, outcome):
    session.add(StaffUser(email="temp@example.com"))
    session.flush()
    if outcome == "raise":
        raise RuntimeError("boom")
    if outcome == "err":
        return validation_error("bad input", field="email")
    return Ok("done")


class TestResults(unittest.TestCase):
    def test_err_defaults(self):
        err = Err(ErrorKind.CONFLICT, "taken")
        self.assertIsNone(err.field)
        self.assertEqual(err.details, {})
        self.assertFalse(err.ok)
        self.assertEqual(str(err), "CONFLICT: taken")

    def test_err_details_are_not_shared(self):
        self.assertIsNot(Err(ErrorKind.GONE, "a").details, Err(ErrorKind.GONE, "b").details)

    def test_helpers(self):
        err = not_found("venue", venue_id=3)
        self.assertEqual(err.kind, ErrorKind.NOT_FOUND)
        self.assertEqual(err.message, "venue not found")
        self.assertEqual(err.details, {"venue_id": 3})
        self.assertEqual(validation_error("rows must be positive", field="rows").field, "rows")
        self.assertTrue(Ok(1).ok)


class TestServiceBoundary(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.engine = create_db_engine(f"sqlite:///{self._tmpdir.name}/results.db")
        init_db(self.engine)

    def tearDown(self):
        self.engine.dispose()
        self._tmpdir.cleanup()

    def staff_count(self):
        with open_session(self.engine) as session:
            return len(session.exec(select(StaffUser)).all())

    def run_with(self, outcome):
        with open_session(self.engine) as session:
            result = _add_then(session, outcome)
            self.assertFalse(session.in_transaction())
            return result

    def test_ok_commits(self):
        self.assertEqual(self.run_with("ok").value, "done")
        self.assertEqual(self.staff_count(), 1)

    def test_err_rolls_back(self):
        res = self.run_with("err")
        self.assertEqual(res.kind, ErrorKind.VALIDATION)
        self.assertEqual(self.staff_count(), 0)

    def test_exception_becomes_internal(self):
        res = self.run_with("raise")
        self.assertEqual(res.kind, ErrorKind.INTERNAL)
        self.assertEqual(res.message, "internal error")
        self.assertEqual(self.staff_count(), 0)
