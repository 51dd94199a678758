"""
Tests for the wizard session registry: ownership, idle expiry, size cap and
the unsaved-changes guard on close.
Run from project root: python -m pytest tests/test_sessions.py -v
Or: python -m unittest tests.test_sessions -v
"""
import unittest
from datetime import datetime, timedelta, timezone

from exceptions import AuthorizationError, SessionNotFoundError, UnsavedChangesError
from services.permissions import LOANS_CREATE, PermissionSet
from services.sessions import WizardSessionRegistry
from services.wizard import WizardController
from tests.factories import FakeGateway


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _controller(creator_id="STF001"):
    return WizardController(FakeGateway(), None, PermissionSet([LOANS_CREATE]), creator_id=creator_id)


class TestWizardSessionRegistry(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock()
        self.registry = WizardSessionRegistry(max_sessions=3, idle_timeout=timedelta(minutes=30), clock=self.clock)

    def test_only_the_opener_may_use_a_session(self):
        controller = _controller("STF001")
        session_id = self.registry.open(controller)
        self.assertIs(self.registry.get(session_id, "STF001"), controller)
        with self.assertRaises(AuthorizationError):
            self.registry.get(session_id, "STF777")
        with self.assertRaises(AuthorizationError):
            self.registry.close(session_id, "STF777")
        self.assertEqual(len(self.registry), 1)

    def test_idle_sessions_expire(self):
        idle = self.registry.open(_controller())
        active = self.registry.open(_controller())
        self.clock.advance(minutes=20)
        self.registry.get(active)
        self.clock.advance(minutes=20)

        with self.assertRaises(SessionNotFoundError):
            self.registry.get(idle)
        self.registry.get(active)
        self.assertEqual(len(self.registry), 1)

    def test_submitting_session_is_not_expired(self):
        controller = _controller()
        session_id = self.registry.open(controller)
        controller.is_submitting = True
        self.clock.advance(hours=1)
        self.assertEqual(self.registry.expire_idle(), 0)
        self.assertIs(self.registry.get(session_id), controller)

    def test_least_recently_used_session_makes_room(self):
        first = self.registry.open(_controller())
        self.clock.advance(minutes=1)
        second = self.registry.open(_controller())
        self.clock.advance(minutes=1)
        third = self.registry.open(_controller())
        self.clock.advance(minutes=1)
        self.registry.get(first)

        self.registry.open(_controller())
        self.assertEqual(len(self.registry), 3)
        with self.assertRaises(SessionNotFoundError):
            self.registry.get(second)
        self.registry.get(first)
        self.registry.get(third)

    def test_close_with_unsaved_changes_needs_confirmation(self):
        controller = _controller()
        session_id = self.registry.open(controller)
        controller.select_center("10")

        with self.assertRaises(UnsavedChangesError):
            self.registry.close(session_id, "STF001")
        self.assertIs(self.registry.get(session_id), controller)

        closed = self.registry.close(session_id, "STF001", confirm=True)
        self.assertIs(closed, controller)
        with self.assertRaises(SessionNotFoundError):
            self.registry.get(session_id)

    def test_close_during_submission_is_not_intercepted(self):
        controller = _controller()
        session_id = self.registry.open(controller)
        controller.select_center("10")
        controller.is_submitting = True
        self.registry.close(session_id)
        self.assertEqual(len(self.registry), 0)


if __name__ == "__main__":
    unittest.main()
