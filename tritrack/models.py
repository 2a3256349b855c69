"""
Workout and Plan records produced by imports and consumed by the services.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


# Raw model output uses short keys; imports may use camelCase or snake_case.
DURATION_KEYS: Tuple[str, ...] = ('duration_minutes', 'durationMinutes', 'duration')
DISTANCE_KEYS: Tuple[str, ...] = ('distance_km', 'distanceKm', 'distance')


def _first_present(raw: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


@dataclass(frozen=True)
class Workout:
    """A single scheduled workout. Immutable once merged into a plan."""
    date: str
    discipline: str
    title: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[float] = None
    distance_km: Optional[float] = None
    intensity: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> 'Workout':
        """Build from an already-validated candidate dict."""
        return cls(
            date=raw['date'],
            discipline=raw['discipline'],
            title=raw.get('title'),
            description=raw.get('description'),
            duration_minutes=_first_present(raw, DURATION_KEYS),
            distance_km=_first_present(raw, DISTANCE_KEYS),
            intensity=raw.get('intensity'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'discipline': self.discipline,
            'title': self.title,
            'description': self.description,
            'duration': self.duration_minutes,
            'distance': self.distance_km,
            'intensity': self.intensity,
        }

    def to_planned_row(self, user_id: str, plan_id: Any) -> Dict[str, Any]:
        """Row shape for the planned_workouts table."""
        return {
            'user_id': user_id,
            'plan_id': plan_id,
            'scheduled_date': self.date,
            'discipline': self.discipline,
            'title': self.title,
            'description': self.description,
            'target_duration_minutes': self.duration_minutes,
            'target_distance_km': self.distance_km,
            'target_intensity': self.intensity,
        }


@dataclass(frozen=True)
class Plan:
    """A merged, date-sorted training plan."""
    name: str
    start_date: Optional[str]
    end_date: Optional[str]
    weeks: Optional[int] = None
    workouts: Tuple[Workout, ...] = field(default_factory=tuple)

    def out_of_range(self) -> List[Workout]:
        """Workouts dated outside [start_date, end_date]."""
        outside = []
        for workout in self.workouts:
            if self.start_date and workout.date < self.start_date:
                outside.append(workout)
            elif self.end_date and workout.date > self.end_date:
                outside.append(workout)
        return outside

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'startDate': self.start_date,
            'endDate': self.end_date,
            'weeks': self.weeks,
            'workouts': [w.to_dict() for w in self.workouts],
        }
