"""Exceptions raised by the schedule engine."""
from __future__ import annotations


class ScheduleError(Exception):
    """Base class for schedule engine failures."""


class MissingDependencyError(ScheduleError, RuntimeError):
    """A required caller-provided capability (e.g. labels) was not supplied."""


class NotFoundError(ScheduleError, ValueError):
    """The baby or its source formula rule could not be resolved."""


class InvalidAdjustmentError(ScheduleError, ValueError):
    """A phase adjustment request describes an empty or malformed time range."""
