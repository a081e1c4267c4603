# scoring.py
from datetime import date, datetime, timedelta

SUBJECTS = ("MATH", "READING")
TIERS = ("GREEN", "ORANGE", "RED", "GRAY")

DEFAULT_THRESHOLDS = {"green": 85.0, "orange": 75.0, "red": 65.0}

SCORE_MIN = 0.0
SCORE_MAX = 100.0


def calculate_tier(score, thresholds=None) -> str:
    """Map a 0-100 score to its tier. Each band includes its lower edge."""
    t = thresholds or DEFAULT_THRESHOLDS
    if score >= t["green"]:
        return "GREEN"
    if score >= t["orange"]:
        return "ORANGE"
    if score >= t["red"]:
        return "RED"
    return "GRAY"


def normalize_subject(value):
    """'Math' / 'reading' / ' MATH ' → canonical subject, or None if unknown."""
    s = str(value or "").strip().upper()
    return s if s in SUBJECTS else None


def subject_display(subject: str) -> str:
    labels = {"MATH": "Math", "READING": "Reading"}
    return labels.get(subject, subject.title())


def week_start_for(value) -> date:
    # Monday of the ISO week; Sunday belongs to the week that started six days earlier.
    if isinstance(value, datetime):
        value = value.date()
    return value - timedelta(days=value.weekday())


def tier_percentages(counts: dict, total: int) -> dict:
    if not total:
        return {k: 0.0 for k in counts}
    return {k: round(v / float(total) * 100.0, 1) for k, v in counts.items()}
