"""
Calculate plan dates working backwards from race date.

Plan Dating Standards:
- Race week = final week of plan
- Week 1 = first training week (furthest from race)
- Plan starts on Monday of Week 1
- Each week runs Monday-Sunday (a Sunday race is day 7 of its week)

Day abbreviations: Mon, Tue, Wed, Thu, Fri, Sat, Sun
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Union

from tritrack.constants import (
    DATE_FORMAT,
    DAY_ABBREV_TO_FULL,
    DAY_ORDER,
    DAY_ORDER_DISPLAY,
)
from tritrack.logger import get_logger
from tritrack.models import Plan

DateLike = Union[date, str]


class InvalidArgument(ValueError):
    """Raised for bad week counts or dates given to the anchor calculator."""
    pass


def parse_date(value: DateLike, field: str = 'date') -> date:
    """Coerce a date or YYYY-MM-DD string to a date, or raise InvalidArgument."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), DATE_FORMAT).date()
        except ValueError:
            pass
    raise InvalidArgument(f"{field} must be a YYYY-MM-DD date, got {value!r}")


def check_weeks(weeks: Any) -> int:
    """Return weeks if it is a positive int, else raise InvalidArgument."""
    # bool is an int subclass; True would silently mean a 1-week plan
    if isinstance(weeks, bool) or not isinstance(weeks, int):
        raise InvalidArgument(f"weeks must be a positive integer, got {weeks!r}")
    if weeks <= 0:
        raise InvalidArgument(f"weeks must be a positive integer, got {weeks}")
    return weeks


def week_monday(value: DateLike, field: str = 'date') -> date:
    """Monday of the Monday-Sunday week containing value."""
    day = parse_date(value, field)
    return day - timedelta(days=day.weekday())  # 0=Monday, 6=Sunday


def race_week_monday(race_date: DateLike) -> date:
    return week_monday(race_date, 'race_date')


def compute_start_date(race_date: DateLike, weeks: int) -> date:
    """
    Compute the Monday of Week 1 so the plan's final week is race week.

    Args:
        race_date: Race date (date or YYYY-MM-DD)
        weeks: Plan length in weeks, >= 1

    Returns:
        The anchor date (always a Monday)

    Raises:
        InvalidArgument: If weeks is not a positive int or race_date is bad
    """
    weeks = check_weeks(weeks)
    return race_week_monday(race_date) - timedelta(weeks=weeks - 1)


def day_index(day: Any) -> int:
    """
    Zero-based weekday index (Monday=0) for a 1-7 day number or a day name.
    """
    if isinstance(day, bool):
        raise InvalidArgument(f"Invalid day: {day!r}")
    if isinstance(day, str):
        text = day.strip().lower()
        if text.isdigit():
            day = int(text)
        else:
            for i, abbrev in enumerate(DAY_ORDER):
                if text in (abbrev.lower(), DAY_ABBREV_TO_FULL[abbrev]):
                    return i
            raise InvalidArgument(f"Invalid day: {day!r}")
    if isinstance(day, int) and 1 <= day <= 7:
        return day - 1
    raise InvalidArgument(f"Invalid day: {day!r}")


def date_for_week_day(start_date: DateLike, week: Any, day: Any) -> date:
    """Calendar date of 'Week N, Day D' given the Week 1 Monday."""
    start = parse_date(start_date, 'start_date')
    if isinstance(week, str) and week.strip().isdigit():
        week = int(week.strip())
    week = check_weeks(week)
    return start + timedelta(weeks=week - 1, days=day_index(day))


def anchor_workouts(raw_workouts: Iterable[Any], start_date: DateLike) -> List[Any]:
    """
    Assign calendar dates to workouts that only carry a week/day position.

    Entries with a date keep it. Entries whose week/day can't be resolved are
    passed through undated so the merge reports them. A bad start_date raises
    InvalidArgument before any entry is touched.
    """
    start = parse_date(start_date, 'start_date')
    log = get_logger()
    anchored = []
    for raw in raw_workouts:
        if not isinstance(raw, dict):
            anchored.append(raw)
            continue

        entry = {k: v for k, v in raw.items() if k not in ('week', 'day')}
        if not entry.get('date') and raw.get('week') is not None and raw.get('day') is not None:
            try:
                entry['date'] = date_for_week_day(start, raw['week'], raw['day']).strftime(DATE_FORMAT)
            except InvalidArgument as e:
                log.debug(f"Could not anchor workout: {e}", week=raw.get('week'), day=raw.get('day'))
        anchored.append(entry)
    return anchored


def build_week_calendar(race_date: DateLike, weeks: int) -> List[Dict[str, Any]]:
    """Week-by-week Monday/Sunday dates for a plan ending in race week."""
    race = parse_date(race_date, 'race_date')
    week1_monday = compute_start_date(race, weeks)

    week_dates = []
    for week_num in range(1, weeks + 1):
        week_monday = week1_monday + timedelta(weeks=week_num - 1)
        week_sunday = week_monday + timedelta(days=6)

        days = []
        for day_offset in range(7):
            day_date = week_monday + timedelta(days=day_offset)
            days.append({
                'day': DAY_ORDER[day_offset],
                'date': day_date.strftime(DATE_FORMAT),
                'is_race_day': day_date == race,
            })

        week_dates.append({
            'week': week_num,
            'monday': week_monday.strftime(DATE_FORMAT),
            'sunday': week_sunday.strftime(DATE_FORMAT),
            'is_race_week': week_num == weeks,
            'days': days,
        })

    return week_dates


def format_week_calendar(week_dates: list, race_date: str) -> str:
    """Format week dates for display."""
    race_weekday = DAY_ORDER_DISPLAY[parse_date(race_date, 'race_date').weekday()]
    lines = []
    lines.append("Week  | Start (Mon) | End (Sun)   | Notes")
    lines.append("------|-------------|-------------|------")

    for week in week_dates:
        notes = ""
        if week['is_race_week']:
            notes = f"RACE WEEK - Race on {race_date} ({race_weekday})"

        lines.append(f"W{week['week']:02d}   | {week['monday']} | {week['sunday']} | {notes}")

    return "\n".join(lines)


def check_plan(plan: Plan) -> List[str]:
    """
    Data-quality checks for a merged plan.

    Returns list of warnings (empty if clean). Source material is imperfect,
    so none of these are errors.
    """
    warnings = []

    for workout in plan.out_of_range():
        warnings.append(
            f"WARNING: {workout.discipline} on {workout.date} is outside the plan "
            f"({plan.start_date} - {plan.end_date})"
        )

    if plan.weeks and plan.start_date and plan.end_date:
        last_monday = parse_date(plan.start_date, 'start_date') + timedelta(weeks=plan.weeks - 1)
        if last_monday != race_week_monday(plan.end_date):
            warnings.append(
                f"WARNING: Week {plan.weeks} starts {last_monday.strftime(DATE_FORMAT)} "
                f"but race week starts {race_week_monday(plan.end_date).strftime(DATE_FORMAT)}"
            )

    return warnings
