"""Value types passed between the registry, transport, trigger and monitor."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class Environment:
    """A named Jenkins endpoint plus the credentials used to reach it."""

    name: str
    url: str
    username: str = ""
    token: str = field(default="", repr=False)
    is_default: bool = False


@dataclass(frozen=True)
class JobReference:
    """Identifies what to trigger or inspect; parameters are read-only."""

    environment: str
    job: str
    parameters: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "parameters", MappingProxyType(dict(self.parameters))
        )


@dataclass(frozen=True)
class QueueItem:
    queue_id: int
    job: JobReference
    submitted_at: datetime = field(
        default_factory=lambda: datetime.now(tz=timezone.utc)
    )


class BuildState(enum.Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    ABORTED = "ABORTED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @classmethod
    def from_build_info(cls, info: Mapping[str, Any]) -> BuildState:
        """Map a Jenkins build JSON document onto a state.

        ``UNSTABLE`` counts as a failure and ``NOT_BUILT`` as aborted, since
        neither produced a usable result.
        """
        if info.get("building"):
            return cls.RUNNING
        return _RESULTS.get(info.get("result") or "", cls.UNKNOWN)


_TERMINAL = frozenset({BuildState.SUCCESS, BuildState.FAILURE, BuildState.ABORTED})

_RESULTS = {
    "SUCCESS": BuildState.SUCCESS,
    "FAILURE": BuildState.FAILURE,
    "UNSTABLE": BuildState.FAILURE,
    "ABORTED": BuildState.ABORTED,
    "NOT_BUILT": BuildState.ABORTED,
}

_RANK = {
    BuildState.UNKNOWN: -1,
    BuildState.QUEUED: 0,
    BuildState.RUNNING: 1,
}


def _timestamp(info: Mapping[str, Any]) -> datetime | None:
    timestamp_ms = info.get("timestamp", 0)
    if not timestamp_ms:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


@dataclass
class Build:
    """A numbered execution of a job, as last observed by the monitor.

    ``log_offset`` is the number of console bytes already consumed; the next
    console fetch starts there. ``log_complete`` records whether the last
    fetch said the log stopped growing.
    """

    job: JobReference
    number: int
    state: BuildState = BuildState.QUEUED
    log_offset: int = 0
    log_complete: bool = False
    started_at: datetime | None = None
    duration: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def advance(self, state: BuildState) -> bool:
        """Move to ``state`` unless that would go backwards.

        Terminal states are final, ``RUNNING`` never returns to ``QUEUED`` and
        ``UNKNOWN`` never replaces an observed state.

        Returns:
            True when the state changed.
        """
        if self.state.is_terminal or state == self.state:
            return False
        if not state.is_terminal and _RANK[state] < _RANK[self.state]:
            return False
        self.state = state
        return True

    def update(self, info: Mapping[str, Any]) -> None:
        """Apply a Jenkins build JSON document to this build."""
        self.advance(BuildState.from_build_info(info))
        started_at = _timestamp(info)
        if started_at is not None:
            self.started_at = started_at
        if self.state.is_terminal and info.get("duration"):
            self.duration = info["duration"] / 1000


@dataclass(frozen=True)
class BuildSummary:
    number: int
    state: BuildState
    started_at: datetime | None = None
    duration: float | None = None

    @classmethod
    def from_build_info(cls, info: Mapping[str, Any]) -> BuildSummary:
        duration_ms = info.get("duration", 0)
        return cls(
            number=info["number"],
            state=BuildState.from_build_info(info),
            started_at=_timestamp(info),
            duration=duration_ms / 1000 if duration_ms else None,
        )


@dataclass(frozen=True)
class ParameterDefinition:
    name: str
    type: str = ""
    description: str = ""
    default: Any = None
    choices: list[str] | None = None


@dataclass(frozen=True)
class LogChunk:
    """One progressive console fetch.

    Attributes:
        text: Console text produced since the requested offset.
        next_offset: Byte offset to request next time.
        more_data: Whether Jenkins says the log is still growing.
    """

    text: str
    next_offset: int
    more_data: bool
