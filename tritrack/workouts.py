"""
Planned/actual workout operations and display helpers.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tritrack.constants import DISCIPLINE_LABELS, KM_TO_MILES
from tritrack.db import Database


STAT_DISCIPLINES = ['swim', 'bike', 'run', 'strength', 'brick']


def weekly_stats(workouts: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """Count, minutes and km per discipline, plus a total row."""
    stats = {d: {'count': 0, 'duration': 0, 'distance': 0.0} for d in STAT_DISCIPLINES}
    del stats['strength']['distance']
    stats['total'] = {'count': 0, 'duration': 0}

    for w in workouts:
        bucket = stats.get(w.get('discipline') or 'other')
        minutes = w.get('duration_minutes') or 0
        if bucket is not None:
            bucket['count'] += 1
            bucket['duration'] += minutes
            if w.get('distance_km') and 'distance' in bucket:
                try:
                    bucket['distance'] += float(w['distance_km'])
                except (TypeError, ValueError):
                    pass
        stats['total']['count'] += 1
        stats['total']['duration'] += minutes

    return stats


def format_duration(minutes: Optional[int]) -> str:
    if not minutes:
        return '-'
    hours, mins = divmod(int(minutes), 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def km_to_miles(km: float) -> float:
    return km * KM_TO_MILES


def format_distance(km: Optional[float], discipline: str) -> str:
    """Swims in metres, everything else in miles."""
    if not km:
        return '-'
    if discipline == 'swim':
        return f"{round(km * 1000)}m"
    return f"{km_to_miles(km):.1f} mi"


def _min_sec(pace: float) -> str:
    mins = int(pace)
    secs = round((pace - mins) * 60)
    if secs == 60:
        mins, secs = mins + 1, 0
    return f"{mins}:{secs:02d}"


def format_pace(minutes: Optional[float], km: Optional[float], discipline: str) -> str:
    """Swim pace per 100m, bike speed in mph, run pace per mile."""
    if not minutes or not km:
        return '-'
    if discipline == 'swim':
        return f"{_min_sec(minutes / (km * 10))}/100m"
    miles = km_to_miles(km)
    if discipline == 'bike':
        return f"{miles / minutes * 60:.1f} mph"
    return f"{_min_sec(minutes / miles)}/mi"


def discipline_label(discipline: str) -> str:
    return DISCIPLINE_LABELS.get(discipline, discipline)


class WorkoutsService:
    """CRUD over planned and actual workouts."""

    def __init__(self, db: Database):
        self.db = db

    def get_planned_workouts(self, user_id: str, start: Optional[str] = None,
                             end: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.db.planned_workouts.list(user_id, start, end)

    def get_actual_workouts(self, user_id: str, start: Optional[str] = None,
                            end: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.db.actual_workouts.list(user_id, start, end)

    def log_workout(self, user_id: str, workout_data: Dict[str, Any]) -> Dict[str, Any]:
        row = {'user_id': user_id, 'completed_at': datetime.now(timezone.utc).isoformat()}
        row.update(workout_data)
        return self.db.actual_workouts.create(row)

    def update_workout(self, workout_id: Any, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.db.actual_workouts.update(workout_id, updates)

    def delete_workout(self, workout_id: Any) -> None:
        self.db.actual_workouts.delete(workout_id)

    def create_planned_workout(self, user_id: str, workout_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.db.planned_workouts.create(dict(workout_data, user_id=user_id))

    def create_planned_workouts(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.db.planned_workouts.create_many(rows)

    def delete_planned_workout(self, workout_id: Any) -> None:
        self.db.planned_workouts.delete(workout_id)
