"""
Merge workout lists extracted from several images (or pasted JSON) of the
same training plan into one validated, date-sorted Plan.

Validation is fail-fast: model output and hand-pasted JSON are unreliable,
so the first bad entry aborts the merge. Nothing is dropped or coerced.
"""

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from tritrack.constants import DATE_FORMAT, DATE_PATTERN, DISCIPLINES, INTENSITIES
from tritrack.logger import get_logger
from tritrack.models import Plan, Workout
from tritrack.plan_dates import DateLike, parse_date

DATE_RE = re.compile(DATE_PATTERN)


class MalformedWorkout(ValueError):
    """A workout candidate failed schema validation."""

    def __init__(self, index: int, field: str, value: Any, reason: str,
                 source_index: Optional[int] = None, position: Optional[int] = None):
        self.index = index
        self.field = field
        self.value = value
        self.reason = reason
        self.source_index = source_index
        self.position = position

        where = f"Workout {index}"
        if source_index is not None:
            where += f" (source {source_index}, entry {position})"
        super().__init__(f"{where}: {reason}")


class EmptyResult(Exception):
    """An import completed but found no workouts in any source."""
    pass


def _source_workouts(source: Any) -> List[Any]:
    """Workout list from a {'workouts': [...]} mapping, an object, or a bare list."""
    if source is None:
        return []
    if isinstance(source, dict):
        workouts = source.get('workouts')
    elif isinstance(source, (list, tuple)):
        workouts = source
    else:
        workouts = getattr(source, 'workouts', None)
    if workouts is None:
        return []
    return list(workouts)


def _is_calendar_date(value: str) -> bool:
    try:
        datetime.strptime(value, DATE_FORMAT)
        return True
    except ValueError:
        return False


def validate_workout(raw: Any, index: int, source_index: Optional[int] = None,
                     position: Optional[int] = None) -> Workout:
    """
    Validate one candidate and build a Workout.

    Raises:
        MalformedWorkout: naming the entry's position and the offending field
    """
    def fail(field: str, value: Any, reason: str):
        raise MalformedWorkout(index, field, value, reason, source_index, position)

    if isinstance(raw, Workout):
        raw = {
            'date': raw.date,
            'discipline': raw.discipline,
            'title': raw.title,
            'description': raw.description,
            'duration_minutes': raw.duration_minutes,
            'distance_km': raw.distance_km,
            'intensity': raw.intensity,
        }
    if not isinstance(raw, dict):
        fail('workout', raw, f"expected an object, got {type(raw).__name__}")

    date_value = raw.get('date')
    if not isinstance(date_value, str) or not DATE_RE.match(date_value) or not _is_calendar_date(date_value):
        fail('date', date_value, f"invalid date {date_value!r} (expected YYYY-MM-DD)")

    discipline = raw.get('discipline')
    if discipline not in DISCIPLINES:
        fail('discipline', discipline,
             f"invalid discipline {discipline!r} (expected one of {', '.join(DISCIPLINES)})")

    intensity = raw.get('intensity')
    if intensity is not None and intensity not in INTENSITIES:
        fail('intensity', intensity,
             f"invalid intensity {intensity!r} (expected one of {', '.join(INTENSITIES)})")

    return Workout.from_raw(raw)


def merge_schedules(sources: Iterable[Any], start_date: Optional[DateLike],
                    race_date: Optional[DateLike] = None, weeks: Optional[int] = None,
                    name: str = '') -> Plan:
    """
    Combine per-source workout lists into one chronologically ordered Plan.

    Args:
        sources: Each a {'workouts': [...]} mapping, an object with a
                 `workouts` attribute, or a bare list, with absolute dates
        start_date: Week 1 Monday of the plan
        race_date: Optional race date; becomes end_date when given
        weeks: Optional plan length, carried onto the Plan
        name: Plan name

    Returns:
        Plan with every input workout, stably sorted by date

    Raises:
        MalformedWorkout: On the first invalid entry; no partial Plan
    """
    validated: List[Workout] = []
    index = 0
    for source_index, source in enumerate(sources):
        for position, raw in enumerate(_source_workouts(source)):
            workout = validate_workout(raw, index, source_index, position)
            validated.append(workout)
            index += 1

    # sorted() is stable; fixed-width ISO strings order chronologically
    workouts = tuple(sorted(validated, key=lambda w: w.date))

    if race_date is not None:
        end_date = parse_date(race_date, 'race_date').strftime(DATE_FORMAT)
    elif workouts:
        end_date = workouts[-1].date
    else:
        end_date = None

    start = parse_date(start_date, 'start_date').strftime(DATE_FORMAT) if start_date else None

    plan = Plan(name=name, start_date=start, end_date=end_date, weeks=weeks, workouts=workouts)

    outside = plan.out_of_range()
    if outside:
        get_logger().warning(
            "Workouts fall outside the plan window",
            count=len(outside), start=plan.start_date, end=plan.end_date,
        )

    return plan


def plan_summary(plan: Plan) -> Dict[str, int]:
    """Workout counts per discipline."""
    counts: Dict[str, int] = {}
    for workout in plan.workouts:
        counts[workout.discipline] = counts.get(workout.discipline, 0) + 1
    return counts
