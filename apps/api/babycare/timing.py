"""Project phase durations onto the clock and classify "now" against them."""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .clock import MINUTES_IN_DAY, format_clock, parse_clock
from .schemas import (
    ActivityType,
    PhaseState,
    PhaseStatus,
    PhaseTiming,
    ScheduleCycle,
    ScheduleItem,
    ScheduleProjection,
)

MAX_GAP_MINUTES = MINUTES_IN_DAY // 2


def _paired_sleep_timing(
    item: ScheduleItem,
    timings: Dict[int, PhaseTiming],
    last_sleep: Optional[PhaseTiming],
) -> Optional[PhaseTiming]:
    if item.pair_id is not None and item.pair_id in timings:
        return timings[item.pair_id]
    return last_sleep


def _gap_before(item: ScheduleItem, current: int) -> int:
    gap = (parse_clock(item.start_time) - current) % MINUTES_IN_DAY
    # anything past half a day reads as an overlap, not a gap
    return gap if gap <= MAX_GAP_MINUTES else 0


def project_timings(items: Sequence[ScheduleItem], anchor_time: Optional[str] = None) -> ScheduleProjection:
    """Map each item order to absolute minutes from the anchor day's midnight.

    Offsets accumulate from the anchor (the first item's start when not
    given). A stored start later than the running offset opens a gap and
    moves the offset forward to it. Your Time phases take the range of their
    Sleep phase and do not advance the offset.
    """
    ordered = sorted(items, key=lambda item: item.order)
    if anchor_time is None:
        anchor_time = ordered[0].start_time if ordered else "00:00"
    anchor_minutes = parse_clock(anchor_time)

    timings: Dict[int, PhaseTiming] = {}
    last_sleep: Optional[PhaseTiming] = None
    offset = 0
    for item in ordered:
        if item.activity_type == ActivityType.YOUR_TIME:
            paired = _paired_sleep_timing(item, timings, last_sleep)
            if paired is not None:
                timings[item.order] = paired.model_copy()
                continue
        if item.activity_type != ActivityType.YOUR_TIME:
            offset += _gap_before(item, anchor_minutes + offset)
        start = anchor_minutes + offset
        timing = PhaseTiming(start_minutes=start, end_minutes=start + item.duration_minutes)
        timings[item.order] = timing
        if item.activity_type == ActivityType.YOUR_TIME:
            continue
        if item.activity_type == ActivityType.SLEEP:
            last_sleep = timing
        offset += item.duration_minutes

    spans_overnight = any(timing.end_minutes > MINUTES_IN_DAY for timing in timings.values())
    return ScheduleProjection(anchor_minutes=anchor_minutes, timings=timings, spans_overnight=spans_overnight)


def normalize_now(now_minutes: int, projection: ScheduleProjection) -> int:
    """Read early-morning clock times as next-day when the schedule runs past midnight."""
    if now_minutes < projection.anchor_minutes and projection.spans_overnight:
        return now_minutes + MINUTES_IN_DAY
    return now_minutes


def classify_phases(projection: ScheduleProjection, now_minutes: int) -> Dict[int, PhaseStatus]:
    now = normalize_now(now_minutes, projection)
    statuses: Dict[int, PhaseStatus] = {}
    for order, timing in projection.timings.items():
        if now >= timing.end_minutes:
            statuses[order] = PhaseStatus(order=order, state=PhaseState.PAST)
        elif now >= timing.start_minutes:
            total = timing.end_minutes - timing.start_minutes
            progress = (now - timing.start_minutes) / total if total > 0 else None
            statuses[order] = PhaseStatus(order=order, state=PhaseState.CURRENT, progress=progress)
        else:
            statuses[order] = PhaseStatus(order=order, state=PhaseState.UPCOMING)
    return statuses


def current_phase_order(
    items: Sequence[ScheduleItem],
    projection: ScheduleProjection,
    now_minutes: int,
) -> Optional[int]:
    statuses = classify_phases(projection, now_minutes)
    for item in sorted(items, key=lambda item: item.order):
        if item.activity_type == ActivityType.YOUR_TIME:
            continue
        status = statuses.get(item.order)
        if status and status.state == PhaseState.CURRENT:
            return item.order
    return None


def group_cycles(items: Sequence[ScheduleItem]) -> List[ScheduleCycle]:
    """Split the day into EASY cycles; every Eat phase opens a new one."""
    cycles: List[ScheduleCycle] = []
    current: List[ScheduleItem] = []
    for item in sorted(items, key=lambda item: item.order):
        if item.activity_type == ActivityType.EAT and current:
            cycles.append(ScheduleCycle(number=len(cycles) + 1, items=current))
            current = []
        current.append(item)
    if current:
        cycles.append(ScheduleCycle(number=len(cycles) + 1, items=current))
    return cycles


def anchor_for_phase_start(anchor_time: str, timing: PhaseTiming, picked_time: str) -> str:
    """First wake time that moves the whole day so this phase starts at ``picked_time``.

    The phase keeps its day offset, so picking 06:00 for a phase projected
    into the next morning stays on the next morning.
    """
    day_offset = timing.start_minutes // MINUTES_IN_DAY
    absolute = day_offset * MINUTES_IN_DAY + parse_clock(picked_time)
    delta = absolute - timing.start_minutes
    return format_clock(parse_clock(anchor_time) + delta)
