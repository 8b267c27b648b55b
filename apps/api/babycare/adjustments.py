"""Single-day phase adjustments persisted as day overrides."""
from __future__ import annotations

import logging
from datetime import date as date_type, timedelta
from typing import Dict, List, Optional, Protocol, Sequence

from .clock import MINUTES_IN_DAY, compute_age_weeks, format_clock, minutes_between, parse_clock
from .config import CONFIG
from .db import SqliteOverrideStore, get_child_profile, update_child_schedule_settings
from .errors import InvalidAdjustmentError, NotFoundError
from .formulas import estimate_wake_window, find_rule, rule_for_age
from .labels import build_labels
from .schedule_builder import build_schedule, shift_schedule
from .schemas import (
    ActivityType,
    ChildScheduleProfile,
    DayOverride,
    DaySchedule,
    FormulaRule,
    LabelProvider,
    ScheduleItem,
)
from .supabase import SupabaseOverrideStore
from .timing import anchor_for_phase_start, project_timings

logger = logging.getLogger(__name__)


class OverrideStore(Protocol):
    def get(self, baby_id: int, date: str) -> Optional[DayOverride]:
        ...

    def save(self, baby_id: int, date: str, source_rule_id: str, items: Sequence[ScheduleItem]) -> DayOverride:
        ...

    def delete(self, baby_id: int, date: str) -> bool:
        ...

    def delete_before(self, cutoff_date: str) -> int:
        ...


def default_store() -> OverrideStore:
    if CONFIG.override_store == "supabase":
        return SupabaseOverrideStore()
    return SqliteOverrideStore()


def today_string() -> str:
    """Today's date in the device's local day."""
    return date_type.today().isoformat()


def _load_child(baby_id: int) -> ChildScheduleProfile:
    child = get_child_profile(baby_id)
    if child is None:
        raise NotFoundError(f"Baby profile {baby_id} not found")
    return child


def resolve_source_rule(child: ChildScheduleProfile) -> FormulaRule:
    """Selected formula when it is a known rule, otherwise the age band."""
    selected = find_rule(child.selected_formula_id)
    if selected:
        return selected
    if child.selected_formula_id:
        logger.warning(
            "selected formula not in catalog, using age band",
            extra={"child_id": child.id, "rule_id": child.selected_formula_id},
        )
    weeks = compute_age_weeks(child.birth_date)
    if weeks is None:
        raise NotFoundError(
            f"No formula rule for baby {child.id}: select a formula or set a birth date first."
        )
    return rule_for_age(weeks)


def _generate_for_child(
    child: ChildScheduleProfile,
    rule: FormulaRule,
    labels: Optional[LabelProvider],
) -> List[ScheduleItem]:
    """Regenerate the child's day; without labels the configured locale is used."""
    weeks = compute_age_weeks(child.birth_date)
    return build_schedule(rule, child.first_wake_time, estimate_wake_window(weeks), labels or build_labels())


def get_day_schedule(
    baby_id: int,
    date: str,
    *,
    labels: Optional[LabelProvider] = None,
    store: Optional[OverrideStore] = None,
) -> DaySchedule:
    """The day's phases: the stored override verbatim, else a fresh generation."""
    store = store or default_store()
    child = _load_child(baby_id)
    existing = store.get(baby_id, date)
    if existing:
        return DaySchedule(
            baby_id=baby_id,
            date=date,
            source_rule_id=existing.source_rule_id,
            first_wake_time=child.first_wake_time,
            is_override=True,
            override_id=existing.id,
            items=existing.schedule_items,
        )
    rule = resolve_source_rule(child)
    return DaySchedule(
        baby_id=baby_id,
        date=date,
        source_rule_id=rule.id,
        first_wake_time=child.first_wake_time,
        items=_generate_for_child(child, rule, labels),
    )


def _sleep_order_for(items: Sequence[ScheduleItem], your_time: ScheduleItem) -> Optional[int]:
    if your_time.pair_id is not None:
        return your_time.pair_id
    for item in sorted(items, key=lambda item: item.order, reverse=True):
        if item.order < your_time.order and item.activity_type == ActivityType.SLEEP:
            return item.order
    return None


def apply_adjustment(
    items: Sequence[ScheduleItem],
    item_order: int,
    new_start_time: str,
    new_end_time: str,
) -> Optional[List[ScheduleItem]]:
    """Retime one phase and cascade the change through the rest of the day.

    Returns None when ``item_order`` is not in the list. Earlier phases are
    returned untouched. Later Your Time phases mirror their Sleep phase and
    never move the running clock. Retiming a Your Time phase retimes its
    Sleep phase instead.
    """
    ordered = sorted(items, key=lambda item: item.order)
    target = next((item for item in ordered if item.order == item_order), None)
    if target is None:
        return None
    if target.activity_type == ActivityType.YOUR_TIME:
        sleep_order = _sleep_order_for(ordered, target)
        if sleep_order is not None:
            item_order = sleep_order

    duration = minutes_between(new_start_time, new_end_time)
    if duration <= 0:
        raise InvalidAdjustmentError("end time must be after start time")

    clock = parse_clock(new_start_time) + duration
    sleeps: Dict[int, ScheduleItem] = {}
    last_sleep: Optional[ScheduleItem] = None
    adjusted: List[ScheduleItem] = []
    for item in ordered:
        if item.order < item_order:
            updated = item
        elif item.order == item_order:
            updated = item.model_copy(update={"start_time": new_start_time, "duration_minutes": duration})
        elif item.activity_type == ActivityType.YOUR_TIME:
            paired = sleeps.get(item.pair_id) if item.pair_id is not None else last_sleep
            if paired is None:
                paired = last_sleep
            if paired is None:
                updated = item
            else:
                updated = item.model_copy(
                    update={"start_time": paired.start_time, "duration_minutes": paired.duration_minutes}
                )
        else:
            updated = item.model_copy(update={"start_time": format_clock(clock)})
            clock += item.duration_minutes
        if updated.activity_type == ActivityType.SLEEP:
            sleeps[updated.order] = updated
            last_sleep = updated
        adjusted.append(updated)
    return adjusted


def adjust_phase_timing(
    baby_id: int,
    date: str,
    item_order: int,
    new_start_time: str,
    new_end_time: str,
    *,
    labels: Optional[LabelProvider] = None,
    store: Optional[OverrideStore] = None,
) -> Optional[str]:
    """Retime one phase of ``date`` and persist the whole day as an override.

    Returns the override id. An ``item_order`` missing from the day is a
    silent no-op that returns the existing override id, if any.
    """
    parse_clock(new_start_time)
    parse_clock(new_end_time)
    store = store or default_store()
    child = _load_child(baby_id)

    existing = store.get(baby_id, date)
    if existing:
        base = existing.schedule_items
        source_rule_id = existing.source_rule_id
    else:
        rule = resolve_source_rule(child)
        base = _generate_for_child(child, rule, labels)
        source_rule_id = rule.id

    adjusted = apply_adjustment(base, item_order, new_start_time, new_end_time)
    if adjusted is None:
        logger.info(
            "phase adjustment ignored: item not in schedule",
            extra={"child_id": baby_id, "date": date, "item_order": item_order},
        )
        return existing.id if existing else None

    saved = store.save(baby_id, date, source_rule_id, adjusted)
    logger.info(
        "phase adjusted",
        extra={
            "child_id": baby_id,
            "date": date,
            "item_order": item_order,
            "rule_id": source_rule_id,
            "override_id": saved.id,
        },
    )
    return saved.id


def _signed_clock_delta(old: str, new: str) -> int:
    delta = (parse_clock(new) - parse_clock(old)) % MINUTES_IN_DAY
    return delta - MINUTES_IN_DAY if delta > MINUTES_IN_DAY // 2 else delta


def update_first_wake_time(
    baby_id: int,
    first_wake_time: str,
    *,
    date: Optional[str] = None,
    store: Optional[OverrideStore] = None,
) -> ChildScheduleProfile:
    """Move the anchor; an existing override for ``date`` shifts as a whole."""
    parse_clock(first_wake_time)
    store = store or default_store()
    child = _load_child(baby_id)
    date = date or today_string()
    delta = _signed_clock_delta(child.first_wake_time, first_wake_time)
    updated = update_child_schedule_settings(baby_id, first_wake_time=first_wake_time)

    existing = store.get(baby_id, date)
    if existing and delta:
        store.save(baby_id, date, existing.source_rule_id, shift_schedule(existing.schedule_items, delta))
    logger.info(
        "first wake time updated",
        extra={"child_id": baby_id, "date": date, "delta_minutes": delta, "override_shifted": bool(existing)},
    )
    return updated


def move_day_to_phase_start(
    baby_id: int,
    date: str,
    item_order: int,
    picked_time: str,
    *,
    labels: Optional[LabelProvider] = None,
    store: Optional[OverrideStore] = None,
) -> ChildScheduleProfile:
    """Shift the whole day so phase ``item_order`` starts at ``picked_time``."""
    parse_clock(picked_time)
    store = store or default_store()
    schedule = get_day_schedule(baby_id, date, labels=labels, store=store)
    timing = project_timings(schedule.items).timings.get(item_order)
    if timing is None:
        raise NotFoundError(f"Phase {item_order} not in the schedule for {date}")
    anchor = anchor_for_phase_start(schedule.first_wake_time, timing, picked_time)
    return update_first_wake_time(baby_id, anchor, date=date, store=store)


def select_formula(baby_id: int, formula_id: Optional[str]) -> ChildScheduleProfile:
    _load_child(baby_id)
    if formula_id is not None and find_rule(formula_id) is None:
        raise NotFoundError(f"Formula rule {formula_id!r} not found")
    return update_child_schedule_settings(baby_id, selected_formula_id=formula_id)


def reset_day(baby_id: int, date: str, *, store: Optional[OverrideStore] = None) -> bool:
    store = store or default_store()
    removed = store.delete(baby_id, date)
    logger.info("day override reset", extra={"child_id": baby_id, "date": date, "removed": removed})
    return removed


def cleanup_expired_overrides(
    today: date_type,
    *,
    retention_days: Optional[int] = None,
    store: Optional[OverrideStore] = None,
) -> int:
    store = store or default_store()
    days = retention_days if retention_days is not None else CONFIG.override_retention_days
    cutoff = (today - timedelta(days=days)).isoformat()
    removed = store.delete_before(cutoff)
    logger.info("expired day overrides removed", extra={"cutoff": cutoff, "count": removed})
    return removed
