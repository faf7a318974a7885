"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from helpdesk.core import (
    AlreadyPausedException,
    MalformedMetadataException,
    NotPausedException,
)
from helpdesk.sla.domain.calendar import BusinessHoursProfile, ensure_utc


class PausePeriod(BaseModel):
    """
    One interval during which the SLA clock was paused.

    Serialized as ``{"startedAt": ..., "endedAt": ...}``; an open pause has
    no ``endedAt``.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    started_at: datetime = Field(alias="startedAt")
    ended_at: Optional[datetime] = Field(default=None, alias="endedAt")

    @field_validator("started_at", "ended_at")
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @model_validator(mode="after")
    def check_order(self) -> "PausePeriod":
        if self.ended_at is not None and self.ended_at < self.started_at:
            raise ValueError("endedAt cannot be before startedAt")
        return self

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def duration(self, now: datetime) -> timedelta:
        """Length of the pause, counting an open pause up to ``now``."""
        end = self.ended_at or ensure_utc(now)
        return max(end - self.started_at, timedelta(0))


class SLAMetadata(BaseModel):
    """
    Pause log of an SLA policy ticket.

    Only the last period may be open, so "at most one open pause" holds
    for every instance that validates.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    pause_periods: Tuple[PausePeriod, ...] = Field(default=(), alias="pausePeriods")

    @field_validator("pause_periods")
    @classmethod
    def validate_periods(cls, v: Tuple[PausePeriod, ...]) -> Tuple[PausePeriod, ...]:
        for period in v[:-1]:
            if period.is_open:
                raise ValueError("only the last pause period may be open")
        return v

    @property
    def open_period(self) -> Optional[PausePeriod]:
        if self.pause_periods and self.pause_periods[-1].is_open:
            return self.pause_periods[-1]
        return None

    @property
    def is_paused(self) -> bool:
        return self.open_period is not None

    def with_pause(self, now: datetime) -> "SLAMetadata":
        """New metadata with an open pause starting at ``now``."""
        if self.is_paused:
            raise AlreadyPausedException()
        periods = self.pause_periods + (PausePeriod(started_at=now),)
        return SLAMetadata(pause_periods=periods)

    def with_resume(self, now: datetime) -> "SLAMetadata":
        """
        New metadata with the open pause closed at ``now``.

        A resume stamped before the pause started closes the period at its
        start, leaving a zero-length pause.
        """
        current = self.open_period
        if current is None:
            raise NotPausedException()
        ended_at = max(ensure_utc(now), current.started_at)
        closed = PausePeriod(started_at=current.started_at, ended_at=ended_at)
        return SLAMetadata(pause_periods=self.pause_periods[:-1] + (closed,))

    def paused_duration(self, now: datetime, until: Optional[datetime] = None) -> timedelta:
        """Total paused time, clipped to ``until`` when given."""
        total = timedelta(0)
        for period in self.pause_periods:
            end = period.ended_at or ensure_utc(now)
            if until is not None:
                end = min(end, ensure_utc(until))
            if end > period.started_at:
                total += end - period.started_at
        return total

    @classmethod
    def parse(cls, raw: Optional[str]) -> "SLAMetadata":
        """
        Parse stored JSON. Empty input yields an empty log.

        Raises:
            MalformedMetadataException: If the JSON or its shape is invalid
        """
        if raw is None or not raw.strip():
            return cls()
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedMetadataException(str(e), raw) from e

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class SLADeadlines:
    """Due instants computed at assignment."""
    first_response_due_at: datetime
    resolution_due_at: datetime
    next_response_due_at: Optional[datetime] = None


def _compliance(met: int, missed: int) -> float:
    measured = met + missed
    if not measured:
        return 100.0
    return met * 100 / measured


@dataclass(frozen=True)
class SLAOutcomeCounts:
    """
    Aggregate SLA outcomes over a set of tickets.

    Undecided targets are not counted. Compliance is 100% while nothing
    has been measured.
    """
    total_tickets: int = 0
    response_met: int = 0
    response_missed: int = 0
    resolution_met: int = 0
    resolution_missed: int = 0

    @property
    def response_compliance_percentage(self) -> float:
        return _compliance(self.response_met, self.response_missed)

    @property
    def resolution_compliance_percentage(self) -> float:
        return _compliance(self.resolution_met, self.resolution_missed)


class StatusThresholds(BaseModel):
    """Percent of the resolution window consumed before warning/critical."""
    warning: int = Field(default=75, ge=0, le=100)
    critical: int = Field(default=90, ge=0, le=100)

    @model_validator(mode="after")
    def check_order(self) -> "StatusThresholds":
        if self.warning > self.critical:
            raise ValueError("warning threshold must not exceed critical threshold")
        return self


class ReconciliationConfig(BaseModel):
    """Sweep cadence and batch size."""
    interval_seconds: int = Field(default=300, ge=0)
    batch_size: int = Field(default=100, ge=1)


class DefaultBusinessHoursConfig(BaseModel):
    """Profile used when an organization has none of its own."""
    name: str = "Standard"
    timezone: str = "UTC"
    hours: Dict[str, Optional[List[str]]] = Field(
        default_factory=lambda: {
            day: ["09:00", "17:00"]
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
        }
    )

    @field_validator("hours")
    @classmethod
    def validate_hours(cls, v: Dict[str, Optional[List[str]]]) -> Dict[str, Optional[List[str]]]:
        for day, window in v.items():
            if window is not None and len(window) != 2:
                raise ValueError(f"{day}: expected [start, end]")
        return v

    def to_profile(self) -> BusinessHoursProfile:
        return BusinessHoursProfile.from_strings(
            name=self.name, timezone=self.timezone, hours=self.hours
        )


class SLAConfig(BaseModel):
    """
    SLA tunables loaded from YAML.

    This is a value object - immutable and defined by its attributes.
    """
    status_thresholds: StatusThresholds = Field(default_factory=StatusThresholds)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    default_business_hours: DefaultBusinessHoursConfig = Field(
        default_factory=DefaultBusinessHoursConfig
    )
