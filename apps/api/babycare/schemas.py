"""Pydantic schemas shared across the schedule engine and API."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

CLOCK_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class ActivityType(str, Enum):
    EAT = "E"
    ACTIVITY = "A"
    SLEEP = "S"
    YOUR_TIME = "Y"




class FormulaRule(BaseModel):
    """One age band of the routine catalog. Durations are in minutes."""

    model_config = ConfigDict(frozen=True)

    id: str
    label_key: str
    age_range_label: str
    min_weeks: int = Field(ge=0)
    max_weeks: Optional[int] = Field(default=None, description="None means open-ended (oldest band)")
    feed_duration_minutes: int = Field(gt=0)
    nap_durations_minutes: Tuple[int, ...] = Field(description="One entry per expected sleep phase")
    activity_range_minutes: Tuple[int, int] = Field(description="Inclusive wake-window clamp band")
    third_nap_drop_wake_threshold: Optional[int] = None
    morning_nap_cap_minutes: Optional[int] = None
    afternoon_activity_range_minutes: Optional[Tuple[int, int]] = None
    night_sleep_minutes: Optional[int] = None
    bedtime_routine_minutes: Optional[int] = None

    @property
    def is_open_ended(self) -> bool:
        return self.max_weeks is None

    def contains(self, weeks: int) -> bool:
        if weeks < self.min_weeks:
            return False
        return self.max_weeks is None or weeks < self.max_weeks


class ScheduleItem(BaseModel):
    order: int = Field(ge=0, description="Dense 0-based position in the day")
    activity_type: ActivityType
    start_time: str = Field(pattern=CLOCK_PATTERN, description="HH:MM, local day")
    duration_minutes: int = Field(gt=0)
    label: str
    pair_id: Optional[int] = Field(
        default=None,
        description="Order of the Sleep item shared by a Sleep/YourTime pair",
    )


@dataclass(frozen=True)
class LabelProvider:
    """Display labels supplied by the caller's localization layer."""

    eat: str
    activity: str
    sleep: Callable[[int], str]
    your_time: str


class PhaseTiming(BaseModel):
    start_minutes: int
    end_minutes: int


class ScheduleProjection(BaseModel):
    anchor_minutes: int = Field(description="Anchor as minutes since midnight")
    timings: Dict[int, PhaseTiming] = Field(default_factory=dict)
    spans_overnight: bool = False


class PhaseState(str, Enum):
    PAST = "past"
    CURRENT = "current"
    UPCOMING = "upcoming"


class PhaseStatus(BaseModel):
    order: int
    state: PhaseState
    progress: Optional[float] = Field(default=None, description="Fraction elapsed for the current phase")


class ScheduleCycle(BaseModel):
    number: int
    items: List[ScheduleItem]


class DayOverride(BaseModel):
    id: str
    baby_id: int
    date: str = Field(pattern=DATE_PATTERN)
    source_rule_id: str
    schedule_items: List[ScheduleItem]
    created_at: datetime
    updated_at: datetime


class ChildScheduleProfile(BaseModel):
    id: int
    first_name: Optional[str] = None
    birth_date: Optional[str] = None
    first_wake_time: str = Field(pattern=CLOCK_PATTERN)
    selected_formula_id: Optional[str] = None


class DaySchedule(BaseModel):
    baby_id: int
    date: str
    source_rule_id: str
    first_wake_time: str
    is_override: bool = False
    override_id: Optional[str] = None
    items: List[ScheduleItem]
