"""
In-process registry of open wizard sessions, keyed by an opaque session id.

A session belongs to the staff member who opened it. Sessions idle for longer than
``idle_timeout`` are dropped, and when ``max_sessions`` are open the least recently
used one makes room for a new one.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from config import settings
from exceptions import AuthorizationError, SessionNotFoundError, UnsavedChangesError
from services.wizard import WizardController
from utils.log import get_logger

logger = get_logger(__name__)

UNSAVED_CHANGES_MESSAGE = "This application has unsaved changes. Save a draft or confirm to discard them."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Entry:
    controller: WizardController
    owner_id: str
    last_seen: datetime


class WizardSessionRegistry:
    def __init__(
        self,
        max_sessions: int = 500,
        idle_timeout: timedelta = timedelta(hours=2),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.max_sessions = max_sessions
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self, controller: WizardController) -> str:
        self.expire_idle()
        while len(self._sessions) >= self.max_sessions:
            oldest = min(self._sessions, key=lambda sid: self._sessions[sid].last_seen)
            self._drop(oldest, "evicted to make room")

        session_id = f"wiz-{uuid.uuid4().hex[:12]}"
        self._sessions[session_id] = _Entry(controller, controller.creator_id, self._clock())
        logger.info("Wizard session %s opened by %s (%s mode)", session_id, controller.creator_id, controller.mode)
        return session_id

    def get(self, session_id: str, actor: Optional[str] = None) -> WizardController:
        """The session's controller; only its owner may use it when ``actor`` is given."""
        self.expire_idle()
        entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFoundError(f"Wizard session {session_id} not found")
        if actor is not None and actor != entry.owner_id:
            raise AuthorizationError(f"Wizard session {session_id} belongs to another staff member")
        entry.last_seen = self._clock()
        return entry.controller

    def close(self, session_id: str, actor: Optional[str] = None, confirm: bool = False) -> WizardController:
        controller = self.get(session_id, actor)
        if controller.should_confirm_unload() and not confirm:
            raise UnsavedChangesError(UNSAVED_CHANGES_MESSAGE)
        del self._sessions[session_id]
        if controller.should_confirm_unload():
            logger.warning("Wizard session %s closed with unsaved changes", session_id)
        else:
            logger.info("Wizard session %s closed", session_id)
        return controller

    def expire_idle(self) -> int:
        now = self._clock()
        stale = [
            sid for sid, entry in self._sessions.items()
            if now - entry.last_seen > self.idle_timeout and not entry.controller.is_submitting
        ]
        for sid in stale:
            self._drop(sid, "expired")
        return len(stale)

    def _drop(self, session_id: str, reason: str) -> None:
        entry = self._sessions.pop(session_id)
        if entry.controller.is_dirty:
            logger.warning("Wizard session %s of %s %s with unsaved changes", session_id, entry.owner_id, reason)
        else:
            logger.info("Wizard session %s %s", session_id, reason)


registry = WizardSessionRegistry(
    max_sessions=settings.max_wizard_sessions,
    idle_timeout=timedelta(minutes=settings.wizard_session_idle_minutes),
)
