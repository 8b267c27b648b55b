"""Built-in activity labels for the schedule endpoints."""
from __future__ import annotations

from typing import Dict, Optional

from .config import CONFIG
from .schemas import LabelProvider

ACTIVITY_LABELS: Dict[str, Dict[str, str]] = {
    "en": {
        "eat": "Eat",
        "activity": "Activity",
        "sleep": "Sleep {{number}}",
        "yourTime": "Your time",
    },
    "es": {
        "eat": "Comer",
        "activity": "Actividad",
        "sleep": "Sueño {{number}}",
        "yourTime": "Tu tiempo",
    },
    "vi": {
        "eat": "Ăn",
        "activity": "Hoạt động",
        "sleep": "Ngủ {{number}}",
        "yourTime": "Thời gian của bạn",
    },
}


def build_labels(locale: Optional[str] = None) -> LabelProvider:
    """Label provider for ``locale``; unknown locales use the configured default."""
    language = (locale or CONFIG.default_locale).split("-")[0].lower()
    table = ACTIVITY_LABELS.get(language) or ACTIVITY_LABELS.get(CONFIG.default_locale, ACTIVITY_LABELS["en"])
    sleep_template = table["sleep"]
    return LabelProvider(
        eat=table["eat"],
        activity=table["activity"],
        sleep=lambda number: sleep_template.replace("{{number}}", str(number)),
        your_time=table["yourTime"],
    )
