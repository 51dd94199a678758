"""Capability checks for the loan workflow, injected into the wizard and the approval machine."""
from __future__ import annotations

from typing import Iterable

LOANS_CREATE = "loans.create"
LOANS_EDIT = "loans.edit"
LOANS_APPROVE = "loans.approve"
LOANS_FINAL_APPROVE = "loans.final_approve"


class PermissionSet:
    """A fixed set of permission names held by the acting staff member."""

    def __init__(self, permissions: Iterable[str] = ()) -> None:
        self._permissions = frozenset(p.strip() for p in permissions if p and p.strip())

    @classmethod
    def from_header(cls, value: str | None) -> "PermissionSet":
        return cls((value or "").split(","))

    def has(self, name: str) -> bool:
        return name in self._permissions

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __iter__(self):
        return iter(sorted(self._permissions))

    def __repr__(self) -> str:
        return f"PermissionSet({sorted(self._permissions)!r})"

    @property
    def is_manager(self) -> bool:
        """Manager tier: may take first-stage decisions only."""
        return self.has(LOANS_APPROVE) and not self.has(LOANS_FINAL_APPROVE)

    @property
    def is_final_approver(self) -> bool:
        return self.has(LOANS_FINAL_APPROVE)

    @property
    def can_create(self) -> bool:
        return self.has(LOANS_CREATE)

    @property
    def can_edit(self) -> bool:
        return self.has(LOANS_EDIT) or (self.has(LOANS_CREATE) and not self.has(LOANS_APPROVE))
