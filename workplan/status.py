"""PR task status type and its legal-transition table.

Statuses form a closed set of variants. ``Blocked`` and ``Abandoned`` carry
a reason and a timestamp; ``Merged`` and ``Abandoned`` are terminal.

Usage:
    from workplan.status import Refined, Implemented, can_transition

    can_transition(Refined(), Implemented())  # True
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, Tuple

from .clock import parse_timestamp, utcnow


@dataclass(frozen=True, slots=True)
class PrTaskStatus:
    """Base of all status variants. Never instantiated directly."""

    type: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}

    def __str__(self) -> str:
        return status_label(self)


@dataclass(frozen=True, slots=True)
class ToBeRefined(PrTaskStatus):
    type: ClassVar[str] = "ToBeRefined"


@dataclass(frozen=True, slots=True)
class Refined(PrTaskStatus):
    type: ClassVar[str] = "Refined"


@dataclass(frozen=True, slots=True)
class Implemented(PrTaskStatus):
    type: ClassVar[str] = "Implemented"


@dataclass(frozen=True, slots=True)
class Reviewed(PrTaskStatus):
    type: ClassVar[str] = "Reviewed"


@dataclass(frozen=True, slots=True)
class Merged(PrTaskStatus):
    type: ClassVar[str] = "Merged"


@dataclass(frozen=True, slots=True)
class Blocked(PrTaskStatus):
    type: ClassVar[str] = "Blocked"

    reason: str
    since: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "reason": self.reason, "since": self.since}


@dataclass(frozen=True, slots=True)
class Abandoned(PrTaskStatus):
    type: ClassVar[str] = "Abandoned"

    reason: str
    at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "reason": self.reason, "at": self.at}


# Fixed bucket order used by plan statistics.
STATUS_TYPES: Tuple[str, ...] = (
    "ToBeRefined",
    "Refined",
    "Implemented",
    "Reviewed",
    "Merged",
    "Blocked",
    "Abandoned",
)

TERMINAL_TYPES = frozenset({"Merged", "Abandoned"})

# Transitions not covered by the blanket rules in can_transition.
VALID_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "ToBeRefined": ("Refined",),
    "Refined": ("Implemented",),
    "Implemented": ("Reviewed",),
    "Reviewed": ("Merged", "Implemented"),
    "Blocked": ("Implemented", "Reviewed"),
}

# Statuses from which acceptance-criteria progress may be recorded.
PROGRESSABLE_TYPES = ("Refined", "Implemented", "Reviewed")

_SIMPLE_STATUSES = {
    "ToBeRefined": ToBeRefined,
    "Refined": Refined,
    "Implemented": Implemented,
    "Reviewed": Reviewed,
    "Merged": Merged,
}


def _check_known(status: PrTaskStatus) -> None:
    if not isinstance(status, PrTaskStatus) or status.type not in STATUS_TYPES:
        raise TypeError(f"Unknown status type: {status!r}")


def is_terminal(status: PrTaskStatus) -> bool:
    """Merged and Abandoned tasks accept no further transitions."""
    _check_known(status)
    return status.type in TERMINAL_TYPES


def is_completed(status: PrTaskStatus) -> bool:
    """Only a merged task counts as done for line analysis."""
    _check_known(status)
    return status.type == "Merged"


def can_transition(from_status: PrTaskStatus, to_status: PrTaskStatus) -> bool:
    """Return True when moving from ``from_status`` to ``to_status`` is legal."""
    _check_known(from_status)
    _check_known(to_status)

    if from_status.type in TERMINAL_TYPES:
        return False

    if to_status.type in ("Blocked", "Abandoned"):
        return True

    # ToBeRefined and Refined are reachable from any non-terminal state
    if to_status.type in ("ToBeRefined", "Refined"):
        return True

    return to_status.type in VALID_TRANSITIONS.get(from_status.type, ())


def status_label(status: PrTaskStatus) -> str:
    """Human-readable label, including the reason for Blocked/Abandoned."""
    if isinstance(status, ToBeRefined):
        return "To Be Refined"
    if isinstance(status, (Refined, Implemented, Reviewed, Merged)):
        return status.type
    if isinstance(status, (Blocked, Abandoned)):
        return f"{status.type}: {status.reason}"
    raise TypeError(f"Unknown status type: {status!r}")


def _coerce_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return parse_timestamp(value)
    raise ValueError(f"Expected a timestamp, got {value!r}")


def status_from_dict(data: Dict[str, Any]) -> PrTaskStatus:
    """Rebuild a status from its persisted form."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected a status object, got {data!r}")
    status_type = data.get("type")
    if status_type in _SIMPLE_STATUSES:
        return _SIMPLE_STATUSES[status_type]()
    if status_type == "Blocked":
        return Blocked(reason=data.get("reason", ""), since=_coerce_datetime(data["since"]))
    if status_type == "Abandoned":
        return Abandoned(reason=data.get("reason", ""), at=_coerce_datetime(data["at"]))
    raise ValueError(f"Unknown status type: {status_type!r}")
