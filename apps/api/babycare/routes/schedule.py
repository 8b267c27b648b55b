import logging
from datetime import date as date_type, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..adjustments import (
    adjust_phase_timing,
    cleanup_expired_overrides,
    get_day_schedule,
    move_day_to_phase_start,
    reset_day,
    select_formula,
    today_string,
    update_first_wake_time,
)
from ..clock import minutes_of_day, parse_clock
from ..errors import InvalidAdjustmentError, NotFoundError
from ..formulas import list_rules, rule_by_id, rule_for_age
from ..labels import build_labels
from ..schedule_builder import generate_schedule
from ..schemas import (
    CLOCK_PATTERN,
    DATE_PATTERN,
    ChildScheduleProfile,
    DaySchedule,
    FormulaRule,
    PhaseStatus,
    PhaseTiming,
    ScheduleCycle,
    ScheduleItem,
)
from ..timing import classify_phases, current_phase_order, group_cycles, project_timings

router = APIRouter(prefix="/api/v1", tags=["schedule"])
logger = logging.getLogger(__name__)


class SchedulePreview(BaseModel):
    rule_id: str
    items: List[ScheduleItem]
    timings: Dict[int, PhaseTiming]
    spans_overnight: bool
    cycles: List[ScheduleCycle]


class ScheduleView(DaySchedule):
    timings: Dict[int, PhaseTiming]
    spans_overnight: bool
    statuses: List[PhaseStatus]
    cycles: List[ScheduleCycle]
    current_order: Optional[int] = None


class AdjustPhasePayload(BaseModel):
    child_id: int
    date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    start_time: str = Field(pattern=CLOCK_PATTERN)
    end_time: str = Field(pattern=CLOCK_PATTERN)
    locale: Optional[str] = None


class AdjustPhaseResponse(BaseModel):
    override_id: Optional[str] = None
    schedule: ScheduleView


class PhaseStartPayload(BaseModel):
    child_id: int
    date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    start_time: str = Field(pattern=CLOCK_PATTERN)
    locale: Optional[str] = None


class ScheduleSettingsPayload(BaseModel):
    child_id: int
    first_wake_time: Optional[str] = Field(default=None, pattern=CLOCK_PATTERN)
    selected_formula_id: Optional[str] = None
    date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)


def _build_view(schedule: DaySchedule, now_minutes: int) -> ScheduleView:
    projection = project_timings(schedule.items)
    statuses = classify_phases(projection, now_minutes)
    return ScheduleView(
        **schedule.model_dump(),
        timings=projection.timings,
        spans_overnight=projection.spans_overnight,
        statuses=[statuses[order] for order in sorted(statuses)],
        cycles=group_cycles(schedule.items),
        current_order=current_phase_order(schedule.items, projection, now_minutes),
    )


def _now_minutes(now: Optional[str]) -> int:
    if now:
        return parse_clock(now)
    return minutes_of_day(datetime.now())


@router.get("/schedule/formulas", response_model=List[FormulaRule])
async def list_formulas_endpoint() -> List[FormulaRule]:
    return list(list_rules())


@router.get("/schedule/preview", response_model=SchedulePreview)
async def preview_schedule_endpoint(
    anchor_time: str = Query(..., pattern=CLOCK_PATTERN, description="First wake time"),
    age_weeks: Optional[int] = Query(None, ge=0),
    rule_id: Optional[str] = Query(None),
    locale: Optional[str] = Query(None),
) -> SchedulePreview:
    rule = rule_by_id(rule_id) if rule_id else rule_for_age(age_weeks)
    items = generate_schedule(anchor_time, labels=build_labels(locale), age_weeks=age_weeks, rule_id=rule.id)
    projection = project_timings(items, anchor_time)
    return SchedulePreview(
        rule_id=rule.id,
        items=items,
        timings=projection.timings,
        spans_overnight=projection.spans_overnight,
        cycles=group_cycles(items),
    )


@router.get("/schedule", response_model=ScheduleView)
async def get_schedule_endpoint(
    child_id: int = Query(..., description="Child identifier"),
    date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    locale: Optional[str] = Query(None),
    now: Optional[str] = Query(None, pattern=CLOCK_PATTERN, description="Local clock time to classify"),
) -> ScheduleView:
    logger.info(
        "child-scoped request",
        extra={"method": "GET", "path": "/api/v1/schedule", "child_id": child_id},
    )
    try:
        schedule = get_day_schedule(child_id, date or today_string(), labels=build_labels(locale))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _build_view(schedule, _now_minutes(now))


@router.put("/schedule/phases/{item_order}", response_model=AdjustPhaseResponse)
async def adjust_phase_endpoint(item_order: int, payload: AdjustPhasePayload) -> AdjustPhaseResponse:
    logger.info(
        "child-scoped request",
        extra={"method": "PUT", "path": "/api/v1/schedule/phases", "child_id": payload.child_id},
    )
    date = payload.date or today_string()
    labels = build_labels(payload.locale)
    try:
        override_id = adjust_phase_timing(
            payload.child_id,
            date,
            item_order,
            payload.start_time,
            payload.end_time,
            labels=labels,
        )
        schedule = get_day_schedule(payload.child_id, date, labels=labels)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidAdjustmentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return AdjustPhaseResponse(override_id=override_id, schedule=_build_view(schedule, _now_minutes(None)))


@router.put("/schedule/phases/{item_order}/start", response_model=ScheduleView)
async def move_phase_start_endpoint(item_order: int, payload: PhaseStartPayload) -> ScheduleView:
    """Move the first wake time so the chosen phase starts at ``start_time``."""
    logger.info(
        "child-scoped request",
        extra={"method": "PUT", "path": "/api/v1/schedule/phases/start", "child_id": payload.child_id},
    )
    date = payload.date or today_string()
    labels = build_labels(payload.locale)
    try:
        move_day_to_phase_start(payload.child_id, date, item_order, payload.start_time, labels=labels)
        schedule = get_day_schedule(payload.child_id, date, labels=labels)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _build_view(schedule, _now_minutes(None))


@router.delete("/schedule/overrides")
async def reset_schedule_endpoint(
    child_id: int = Query(..., description="Child identifier"),
    date: Optional[str] = Query(None, pattern=DATE_PATTERN),
) -> dict:
    removed = reset_day(child_id, date or today_string())
    return {"removed": removed}


@router.put("/schedule/settings", response_model=ChildScheduleProfile)
async def update_schedule_settings_endpoint(payload: ScheduleSettingsPayload) -> ChildScheduleProfile:
    try:
        profile: Optional[ChildScheduleProfile] = None
        if "selected_formula_id" in payload.model_fields_set:
            profile = select_formula(payload.child_id, payload.selected_formula_id)
        if payload.first_wake_time is not None:
            profile = update_first_wake_time(payload.child_id, payload.first_wake_time, date=payload.date)
        if profile is None:
            raise HTTPException(status_code=400, detail="No schedule settings to update")
        return profile
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/schedule/overrides/cleanup")
async def cleanup_overrides_endpoint() -> dict:
    removed = cleanup_expired_overrides(date_type.today())
    return {"removed": removed}
