"""Age-banded EASY formula catalog and wake-window estimates."""
from __future__ import annotations

from typing import Optional, Tuple

from .schemas import FormulaRule

FORMULA_RULES: Tuple[FormulaRule, ...] = (
    FormulaRule(
        id="easy3",
        label_key="easySchedule.formulas.easy3.label",
        age_range_label="0-6 weeks",
        min_weeks=0,
        max_weeks=6,
        feed_duration_minutes=35,
        nap_durations_minutes=(120, 120, 120, 45),
        activity_range_minutes=(45, 75),
    ),
    FormulaRule(
        id="easy3_5",
        label_key="easySchedule.formulas.easy3_5.label",
        age_range_label="6-8 weeks",
        min_weeks=6,
        max_weeks=8,
        feed_duration_minutes=40,
        nap_durations_minutes=(120, 120, 90, 30),
        activity_range_minutes=(60, 90),
    ),
    FormulaRule(
        id="easy4",
        label_key="easySchedule.formulas.easy4.label",
        age_range_label="8-19 weeks",
        min_weeks=8,
        max_weeks=19,
        feed_duration_minutes=40,
        # third entry is the late-afternoon catnap
        nap_durations_minutes=(120, 120, 30),
        activity_range_minutes=(75, 120),
        third_nap_drop_wake_threshold=105,
    ),
    FormulaRule(
        id="easy234",
        label_key="easySchedule.formulas.easy234.label",
        age_range_label="19-46 weeks",
        min_weeks=19,
        max_weeks=46,
        feed_duration_minutes=30,
        nap_durations_minutes=(120, 60),
        activity_range_minutes=(120, 180),
        morning_nap_cap_minutes=90,
    ),
    FormulaRule(
        id="easy56",
        label_key="easySchedule.formulas.easy56.label",
        age_range_label="46+ weeks",
        min_weeks=46,
        max_weeks=None,
        feed_duration_minutes=30,
        nap_durations_minutes=(120,),
        activity_range_minutes=(240, 300),
        afternoon_activity_range_minutes=(210, 270),
        night_sleep_minutes=660,
        bedtime_routine_minutes=30,
    ),
)

NEWBORN_RULE = FORMULA_RULES[0]

# (exclusive upper bound in weeks, wake window minutes); None closes the table.
WAKE_WINDOWS: Tuple[Tuple[Optional[int], int], ...] = (
    (4, 50),
    (8, 60),
    (12, 75),
    (16, 90),
    (19, 105),
    (30, 120),
    (46, 150),
    (None, 180),
)


def list_rules() -> Tuple[FormulaRule, ...]:
    return FORMULA_RULES


def find_rule(rule_id: Optional[str]) -> Optional[FormulaRule]:
    for rule in FORMULA_RULES:
        if rule.id == rule_id:
            return rule
    return None


def rule_by_id(rule_id: Optional[str]) -> FormulaRule:
    """Exact lookup; unknown ids fall back to the newborn rule."""
    return find_rule(rule_id) or NEWBORN_RULE


def rule_for_age(weeks: Optional[int]) -> FormulaRule:
    """Return the rule whose band contains ``weeks`` (newborn when unknown)."""
    if weeks is None or weeks < 0:
        return NEWBORN_RULE
    for rule in FORMULA_RULES:
        if rule.contains(weeks):
            return rule
    return FORMULA_RULES[-1]


def estimate_wake_window(weeks: Optional[int]) -> int:
    if weeks is None:
        return WAKE_WINDOWS[0][1]
    for upper, minutes in WAKE_WINDOWS:
        if upper is None or weeks < upper:
            return minutes
    return WAKE_WINDOWS[-1][1]


def clamp_wake_window(rule: FormulaRule, minutes: int, *, afternoon: bool = False) -> int:
    low, high = rule.activity_range_minutes
    if afternoon and rule.afternoon_activity_range_minutes:
        low, high = rule.afternoon_activity_range_minutes
    return max(low, min(high, minutes))
