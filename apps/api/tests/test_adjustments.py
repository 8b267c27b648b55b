from __future__ import annotations

from datetime import date, timedelta

import pytest

from babycare.adjustments import (
    adjust_phase_timing,
    apply_adjustment,
    cleanup_expired_overrides,
    get_day_schedule,
    move_day_to_phase_start,
    reset_day,
    resolve_source_rule,
    select_formula,
    update_first_wake_time,
)
from babycare.clock import parse_clock
from babycare.db import SqliteOverrideStore, create_child, get_child_profile, get_connection, get_day_override
from babycare.errors import InvalidAdjustmentError, NotFoundError
from babycare.schedule_builder import generate_schedule
from babycare.schemas import ActivityType, ScheduleItem
from babycare.timing import project_timings

DAY = "2025-03-10"


def weeks_ago(weeks: int) -> str:
    return (date.today() - timedelta(weeks=weeks, days=1)).isoformat()


def make_item(order, activity_type, start, duration, pair_id=None) -> ScheduleItem:
    return ScheduleItem(
        order=order,
        activity_type=activity_type,
        start_time=start,
        duration_minutes=duration,
        label=activity_type.name.title(),
        pair_id=pair_id,
    )


def custom_day():
    return [
        make_item(0, ActivityType.ACTIVITY, "07:00", 30),
        make_item(1, ActivityType.EAT, "07:30", 40),
        make_item(2, ActivityType.ACTIVITY, "08:10", 60),
        make_item(3, ActivityType.SLEEP, "09:10", 90, pair_id=3),
        make_item(4, ActivityType.YOUR_TIME, "09:10", 90, pair_id=3),
        make_item(5, ActivityType.EAT, "10:40", 40),
    ]


def test_cascade_shifts_only_later_phases(labels) -> None:
    base = generate_schedule("07:00", labels=labels, rule_id="easy3")
    k = 5
    original = base[k]
    new_end = original.duration_minutes + parse_clock(original.start_time) + 25
    adjusted = apply_adjustment(base, k, original.start_time, f"{new_end // 60:02d}:{new_end % 60:02d}")

    assert adjusted is not None
    for before, after in zip(base[:k], adjusted[:k]):
        assert before.model_dump_json() == after.model_dump_json()
    assert adjusted[k].duration_minutes == original.duration_minutes + 25
    for before, after in zip(base[k + 1 :], adjusted[k + 1 :]):
        if after.activity_type == ActivityType.YOUR_TIME:
            sleep = adjusted[after.pair_id]
            assert after.start_time == sleep.start_time
            continue
        assert parse_clock(after.start_time) - parse_clock(before.start_time) == 25
        assert after.duration_minutes == before.duration_minutes


def test_activity_extension_moves_following_sleep_and_your_time(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(3))
    store = SqliteOverrideStore()
    store.save(child.id, DAY, "easy3", custom_day())

    override_id = adjust_phase_timing(child.id, DAY, 2, "08:10", "09:40", labels=labels)

    saved = get_day_override(child.id, DAY)
    assert saved is not None
    assert saved.id == override_id
    items = saved.schedule_items
    assert (items[2].start_time, items[2].duration_minutes) == ("08:10", 90)
    assert items[3].start_time == "09:40"
    assert items[4].start_time == "09:40"
    assert items[4].duration_minutes == items[3].duration_minutes
    assert items[5].start_time == "11:10"
    assert [item.start_time for item in items[:2]] == ["07:00", "07:30"]


def test_unknown_item_order_leaves_override_untouched(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(3))
    before = SqliteOverrideStore().save(child.id, DAY, "easy3", custom_day())

    result = adjust_phase_timing(child.id, DAY, 42, "08:10", "09:40", labels=labels)

    after = get_day_override(child.id, DAY)
    assert result == before.id
    assert after is not None
    assert after.model_dump() == before.model_dump()


def test_unknown_item_order_without_override_persists_nothing(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(3))
    assert adjust_phase_timing(child.id, DAY, 99, "08:10", "09:40", labels=labels) is None
    assert get_day_override(child.id, DAY) is None


def test_first_adjustment_creates_override_then_patches_it(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2), first_wake_time="06:30")

    first_id = adjust_phase_timing(child.id, DAY, 1, "07:05", "08:05", labels=labels)
    created = get_day_override(child.id, DAY)
    assert created is not None
    assert created.id == first_id
    assert created.source_rule_id == "easy3"
    assert created.schedule_items[0].start_time == "06:30"
    assert created.schedule_items[2].start_time == "08:05"

    second_id = adjust_phase_timing(child.id, DAY, 0, "06:30", "07:00", labels=labels)
    patched = get_day_override(child.id, DAY)
    assert second_id == first_id
    assert patched is not None
    assert patched.created_at == created.created_at
    # item 1 keeps its adjusted 60 minute length and moves with the cascade
    assert (patched.schedule_items[1].start_time, patched.schedule_items[1].duration_minutes) == ("07:00", 60)


def test_adjusting_sleep_keeps_your_time_in_sync(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    adjust_phase_timing(child.id, DAY, 2, "08:25", "09:55", labels=labels)
    items = get_day_override(child.id, DAY).schedule_items
    assert (items[2].start_time, items[2].duration_minutes) == ("08:25", 90)
    assert (items[3].start_time, items[3].duration_minutes) == ("08:25", 90)
    assert items[4].start_time == "09:55"


def test_adjusting_your_time_retimes_its_sleep(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    adjust_phase_timing(child.id, DAY, 3, "08:30", "10:00", labels=labels)
    items = get_day_override(child.id, DAY).schedule_items
    assert (items[2].start_time, items[2].duration_minutes) == ("08:30", 90)
    assert (items[3].start_time, items[3].duration_minutes) == ("08:30", 90)
    assert items[4].start_time == "10:00"


def test_end_before_start_crosses_midnight() -> None:
    items = [
        make_item(0, ActivityType.ACTIVITY, "22:00", 30),
        make_item(1, ActivityType.SLEEP, "22:30", 480),
        make_item(2, ActivityType.EAT, "06:30", 30),
    ]
    adjusted = apply_adjustment(items, 1, "22:30", "06:00")
    assert adjusted[1].duration_minutes == 450
    assert adjusted[2].start_time == "06:00"


def test_empty_range_is_rejected() -> None:
    with pytest.raises(InvalidAdjustmentError):
        apply_adjustment(custom_day(), 2, "08:10", "08:10")


def test_unknown_baby_is_not_found(clean_db, labels) -> None:
    with pytest.raises(NotFoundError):
        adjust_phase_timing(9999, DAY, 1, "07:35", "08:35", labels=labels)


def test_unresolvable_rule_fails_without_persisting(clean_db, labels) -> None:
    child = create_child(first_name="Mai")
    with pytest.raises(NotFoundError):
        adjust_phase_timing(child.id, DAY, 1, "07:35", "08:35", labels=labels)
    assert get_day_override(child.id, DAY) is None


def test_selected_formula_wins_over_age(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2), selected_formula_id="easy234")
    assert resolve_source_rule(child).id == "easy234"
    schedule = get_day_schedule(child.id, DAY, labels=labels)
    assert schedule.source_rule_id == "easy234"
    assert schedule.is_override is False


def test_stale_selected_formula_falls_back_to_age(clean_db) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(20), selected_formula_id="day_1_20240101_x")
    assert resolve_source_rule(child).id == "easy234"


def test_override_applies_to_its_date_only(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    adjust_phase_timing(child.id, DAY, 1, "07:35", "08:35", labels=labels)

    overridden = get_day_schedule(child.id, DAY, labels=labels)
    next_day = get_day_schedule(child.id, "2025-03-11", labels=labels)
    assert overridden.is_override is True
    assert overridden.items[1].duration_minutes == 60
    assert next_day.is_override is False
    assert next_day.items[1].duration_minutes == 50


def test_anchor_edit_moves_every_phase(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    adjust_phase_timing(child.id, DAY, 5, "11:00", "12:00", labels=labels)
    before = get_day_override(child.id, DAY).schedule_items

    profile = update_first_wake_time(child.id, "06:30", date=DAY)

    after = get_day_override(child.id, DAY).schedule_items
    assert profile.first_wake_time == "06:30"
    for old, new in zip(before, after):
        assert parse_clock(old.start_time) - parse_clock(new.start_time) == 30
        assert old.duration_minutes == new.duration_minutes


def test_anchor_edit_without_override_regenerates(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    update_first_wake_time(child.id, "08:15", date=DAY)
    schedule = get_day_schedule(child.id, DAY, labels=labels)
    assert schedule.first_wake_time == "08:15"
    assert schedule.items[0].start_time == "08:15"
    assert get_day_override(child.id, DAY) is None


def test_select_formula_validates_id(clean_db) -> None:
    child = create_child(first_name="Mai")
    assert select_formula(child.id, "easy4").selected_formula_id == "easy4"
    with pytest.raises(NotFoundError):
        select_formula(child.id, "nope")
    assert select_formula(child.id, None).selected_formula_id is None
    assert get_child_profile(child.id).selected_formula_id is None


def test_reset_and_cleanup(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    adjust_phase_timing(child.id, "2025-03-01", 1, "07:35", "08:35", labels=labels)
    adjust_phase_timing(child.id, DAY, 1, "07:35", "08:35", labels=labels)
    adjust_phase_timing(child.id, "2025-03-12", 1, "07:35", "08:35", labels=labels)

    assert reset_day(child.id, "2025-03-12") is True
    assert reset_day(child.id, "2025-03-12") is False

    removed = cleanup_expired_overrides(date(2025, 3, 12), retention_days=7)
    assert removed == 1
    assert get_day_override(child.id, "2025-03-01") is None
    assert get_day_override(child.id, DAY) is not None


def test_picking_a_phase_start_moves_the_whole_day(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    adjust_phase_timing(child.id, DAY, 1, "07:35", "08:35", labels=labels)

    profile = move_day_to_phase_start(child.id, DAY, 2, "09:00", labels=labels)

    assert profile.first_wake_time == "07:25"
    items = get_day_override(child.id, DAY).schedule_items
    assert [item.start_time for item in items[:4]] == ["07:25", "08:00", "09:00", "09:00"]
    assert items[1].duration_minutes == 60


def test_picking_start_for_missing_phase(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    with pytest.raises(NotFoundError):
        move_day_to_phase_start(child.id, DAY, 50, "09:00", labels=labels)


def test_adjustment_without_labels_uses_default_locale(clean_db) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))

    override_id = adjust_phase_timing(child.id, DAY, 1, "07:35", "08:35")

    saved = get_day_override(child.id, DAY)
    assert saved is not None
    assert saved.id == override_id
    assert saved.schedule_items[0].label == "Eat"
    assert saved.schedule_items[2].label == "Sleep 1"
    assert get_day_schedule(child.id, "2025-03-11").items[0].label == "Eat"


def test_picking_a_phase_start_without_labels(clean_db) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    profile = move_day_to_phase_start(child.id, DAY, 2, "09:00")
    assert profile.first_wake_time == "07:35"


def test_projection_follows_a_gap_left_by_a_later_sleep(clean_db, labels) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    adjust_phase_timing(child.id, DAY, 3, "08:30", "10:00", labels=labels)

    timings = project_timings(get_day_override(child.id, DAY).schedule_items).timings

    assert timings[1].end_minutes == 505
    assert timings[2].start_minutes == 510
    assert timings[3] == timings[2]
    assert timings[4].start_minutes == 600


def test_second_save_for_a_day_wins(clean_db) -> None:
    child = create_child(first_name="Mai", birth_date=weeks_ago(2))
    store = SqliteOverrideStore()
    first = store.save(child.id, DAY, "easy3", custom_day())
    later_items = apply_adjustment(custom_day(), 2, "08:10", "09:40")

    second = store.save(child.id, DAY, "easy3_5", later_items)

    assert second.id == first.id
    assert second.created_at == first.created_at
    assert second.source_rule_id == "easy3_5"
    assert second.schedule_items[3].start_time == "09:40"
    with get_connection() as conn:
        count = conn.execute(
            "SELECT COUNT(*) FROM day_overrides WHERE baby_id = ? AND date = ?",
            (child.id, DAY),
        ).fetchone()[0]
    assert count == 1


def test_children_table_has_no_legacy_name_column(clean_db) -> None:
    with get_connection() as conn:
        columns = {row[1] for row in conn.execute("PRAGMA table_info(children)").fetchall()}
    assert "name" not in columns
    assert {"first_name", "birth_date", "first_wake_time", "selected_formula_id"} <= columns
