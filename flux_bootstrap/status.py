"""Readiness status of a reconciled resource."""

from enum import StrEnum
from dataclasses import dataclass

from .manifest import Condition, READY_CONDITION, find_condition


class Status(StrEnum):
    """Reconciliation status for a resource."""

    PENDING = "Pending"
    READY = "Ready"
    FAILED = "Failed"


@dataclass
class StatusInfo:
    """Reconciliation status and optional error message for a resource."""

    status: Status
    error: str | None = None

    def __str__(self) -> str:
        """Return a string representation of the status."""
        if self.error:
            return f"{self.status}: {self.error}"
        return str(self.status)

    @classmethod
    def from_conditions(cls, conditions: list[Condition]) -> "StatusInfo":
        """Derive the status from the Ready condition of an object."""
        if (condition := find_condition(conditions, READY_CONDITION)) is None:
            return cls(status=Status.PENDING)
        if condition.status == "True":
            return cls(status=Status.READY)
        if condition.status == "False":
            return cls(status=Status.FAILED, error=condition.message)
        return cls(status=Status.PENDING)
