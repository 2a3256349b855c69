"""
Single source of truth for constants used across tritrack.

All shared constants should be defined here to avoid duplication.
"""

from typing import Dict, List


# === DISCIPLINES & INTENSITIES ===

DISCIPLINES: List[str] = ['swim', 'bike', 'run', 'strength', 'brick', 'rest']

INTENSITIES: List[str] = ['easy', 'moderate', 'hard', 'race', 'recovery']

DISCIPLINE_LABELS: Dict[str, str] = {
    'swim': 'Swim',
    'bike': 'Bike',
    'run': 'Run',
    'strength': 'Strength',
    'brick': 'Brick',
    'rest': 'Rest',
}


# === DAY MAPPINGS ===
# Weeks are Monday-start; index 0 = Monday, 6 = Sunday (date.weekday())

DAY_FULL_TO_ABBREV: Dict[str, str] = {
    'monday': 'Mon',
    'tuesday': 'Tue',
    'wednesday': 'Wed',
    'thursday': 'Thu',
    'friday': 'Fri',
    'saturday': 'Sat',
    'sunday': 'Sun',
}

DAY_ABBREV_TO_FULL: Dict[str, str] = {v: k for k, v in DAY_FULL_TO_ABBREV.items()}

DAY_ORDER: List[str] = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']
DAY_ORDER_DISPLAY: List[str] = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


# === DATE FORMATS ===

DATE_FORMAT: str = '%Y-%m-%d'
DATE_PATTERN: str = r'^\d{4}-\d{2}-\d{2}$'


# === VALIDATION BOUNDS ===

PLAN_WEEKS_MIN: int = 1
PLAN_WEEKS_MAX: int = 52


# === UNIT CONVERSIONS ===

KM_TO_MILES: float = 0.621371


# === SUPABASE TABLES ===

TABLE_PROFILES: str = 'profiles'
TABLE_MEALS: str = 'meals'
TABLE_TRAINING_PLANS: str = 'training_plans'
TABLE_PLANNED_WORKOUTS: str = 'planned_workouts'
TABLE_ACTUAL_WORKOUTS: str = 'actual_workouts'
TABLE_COACHING_SESSIONS: str = 'coaching_sessions'


# === COACH ===

COACH_HISTORY_MESSAGES: int = 10
COACH_CONTEXT_DAYS: int = 7
