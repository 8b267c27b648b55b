"""Generate the day's EASY phase list from a formula rule and a first wake time."""
from __future__ import annotations

from functools import lru_cache
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .clock import add_minutes, format_clock, parse_clock
from .errors import MissingDependencyError
from .formulas import clamp_wake_window, estimate_wake_window, rule_by_id, rule_for_age
from .schemas import ActivityType, FormulaRule, LabelProvider, ScheduleItem


class PlannedPhase(NamedTuple):
    order: int
    activity_type: ActivityType
    start_time: str
    duration_minutes: int
    nap_number: Optional[int]
    pair_id: Optional[int]


class _PhaseWriter:
    """Running clock that only Eat, Activity and Sleep phases advance."""

    def __init__(self, anchor_time: str) -> None:
        self.clock = parse_clock(anchor_time)
        self.phases: List[PlannedPhase] = []

    def emit(self, activity_type: ActivityType, duration: int) -> None:
        self.phases.append(
            PlannedPhase(len(self.phases), activity_type, format_clock(self.clock), duration, None, None)
        )
        self.clock += duration

    def emit_sleep(self, duration: int, nap_number: int, *, paired: bool = True) -> None:
        start = format_clock(self.clock)
        sleep_order = len(self.phases)
        pair_id = sleep_order if paired else None
        self.phases.append(PlannedPhase(sleep_order, ActivityType.SLEEP, start, duration, nap_number, pair_id))
        if paired:
            self.phases.append(
                PlannedPhase(sleep_order + 1, ActivityType.YOUR_TIME, start, duration, None, pair_id)
            )
        self.clock += duration


def _standard_plan(rule: FormulaRule, writer: _PhaseWriter, wake_window: int) -> None:
    naps = list(rule.nap_durations_minutes)
    threshold = rule.third_nap_drop_wake_threshold
    if threshold is not None and wake_window >= threshold and len(naps) > 1:
        naps = naps[:-1]
    for index, nap in enumerate(naps):
        writer.emit(ActivityType.EAT, rule.feed_duration_minutes)
        writer.emit(ActivityType.ACTIVITY, wake_window)
        if index == 0 and rule.morning_nap_cap_minutes:
            nap = min(nap, rule.morning_nap_cap_minutes)
        writer.emit_sleep(nap, index + 1)


def _toddler_plan(rule: FormulaRule, writer: _PhaseWriter, morning_window: int, afternoon_window: int) -> None:
    writer.emit(ActivityType.EAT, rule.feed_duration_minutes)
    writer.emit(ActivityType.ACTIVITY, morning_window)
    writer.emit_sleep(rule.nap_durations_minutes[0], 1)
    writer.emit(ActivityType.EAT, rule.feed_duration_minutes)
    writer.emit(ActivityType.ACTIVITY, afternoon_window)
    writer.emit(ActivityType.EAT, rule.feed_duration_minutes)
    if rule.bedtime_routine_minutes:
        writer.emit(ActivityType.ACTIVITY, rule.bedtime_routine_minutes)
    if rule.night_sleep_minutes:
        writer.emit_sleep(rule.night_sleep_minutes, 2, paired=False)


@lru_cache(maxsize=256)
def plan_phases(rule: FormulaRule, anchor_time: str, wake_window_seed: int) -> Tuple[PlannedPhase, ...]:
    """Label-free phase plan; cached since generation is deterministic."""
    writer = _PhaseWriter(anchor_time)
    wake_window = clamp_wake_window(rule, wake_window_seed)
    if rule.is_open_ended:
        afternoon_window = clamp_wake_window(rule, wake_window_seed, afternoon=True)
        _toddler_plan(rule, writer, wake_window, afternoon_window)
    else:
        _standard_plan(rule, writer, wake_window)
    return tuple(writer.phases)


def _label_for(phase: PlannedPhase, labels: LabelProvider) -> str:
    if phase.activity_type == ActivityType.EAT:
        return labels.eat
    if phase.activity_type == ActivityType.ACTIVITY:
        return labels.activity
    if phase.activity_type == ActivityType.SLEEP:
        return labels.sleep(phase.nap_number or 1)
    return labels.your_time


def _require_labels(labels: Optional[LabelProvider]) -> LabelProvider:
    if labels is None:
        raise MissingDependencyError(
            "generate_schedule: labels are required. Pass labels from your localization provider."
        )
    return labels


def build_schedule(
    rule: FormulaRule,
    anchor_time: str,
    wake_window_seed: int,
    labels: Optional[LabelProvider],
) -> List[ScheduleItem]:
    labels = _require_labels(labels)
    return [
        ScheduleItem(
            order=phase.order,
            activity_type=phase.activity_type,
            start_time=phase.start_time,
            duration_minutes=phase.duration_minutes,
            label=_label_for(phase, labels),
            pair_id=phase.pair_id,
        )
        for phase in plan_phases(rule, anchor_time, wake_window_seed)
    ]


def generate_schedule(
    anchor_time: str,
    *,
    labels: Optional[LabelProvider],
    age_weeks: Optional[int] = None,
    rule_id: Optional[str] = None,
) -> List[ScheduleItem]:
    """Generate the EASY phase list for a day starting at ``anchor_time``.

    An explicit ``rule_id`` wins over the age band; unknown ids fall back to
    the newborn rule. Each Sleep phase is followed by a Your Time phase that
    covers the same interval.
    """
    labels = _require_labels(labels)
    rule = rule_by_id(rule_id) if rule_id else rule_for_age(age_weeks)
    return build_schedule(rule, anchor_time, estimate_wake_window(age_weeks), labels)


def shift_schedule(items: Sequence[ScheduleItem], delta_minutes: int) -> List[ScheduleItem]:
    return [
        item.model_copy(update={"start_time": add_minutes(item.start_time, delta_minutes)})
        for item in items
    ]
