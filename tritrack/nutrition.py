"""
Nutrition lookup via CalorieNinjas and meal logging.

Lookups are cached in an explicit NutritionCache owned by the caller.
"""

import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from tritrack.config_loader import Config, get_config
from tritrack.db import Database
from tritrack.logger import get_logger


# CalorieNinjas item key -> meal column
NUTRIENT_FIELDS: Dict[str, str] = {
    'calories': 'calories',
    'protein_g': 'protein_g',
    'carbohydrates_total_g': 'carbs_g',
    'fat_total_g': 'fat_g',
    'fiber_g': 'fiber_g',
    'sugar_g': 'sugar_g',
    'sodium_mg': 'sodium_mg',
}


class NutritionLookupError(Exception):
    """CalorieNinjas request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NutritionCache:
    """Lookup results keyed by normalized food description."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(description: str) -> str:
        return description.lower().strip()

    def get(self, description: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._entries.get(self.key(description))

    def set(self, description: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._entries[self.key(description)] = value

    def __len__(self) -> int:
        return len(self._entries)


class CalorieNinjasClient:
    """Minimal CalorieNinjas API client."""

    def __init__(self, api_key: Optional[str] = None, config: Optional[Config] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or get_config()
        self.api_key = api_key or os.environ.get('CALORIE_NINJAS_API_KEY', '')
        if not self.api_key:
            raise NutritionLookupError('CalorieNinjas API key not configured', status_code=500)
        self.url = self.config.get('calorie_ninjas.url')
        self.timeout = self.config.get('calorie_ninjas.timeout', 10)
        self.session = session or requests.Session()

    def lookup(self, query: str) -> Dict[str, Any]:
        """Raw API response for a free-text food query."""
        try:
            response = self.session.get(
                self.url,
                params={'query': query},
                headers={'X-Api-Key': self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NutritionLookupError(f'CalorieNinjas unreachable: {e}', status_code=502) from e

        if not response.ok:
            raise NutritionLookupError(
                f'CalorieNinjas request failed ({response.status_code})', status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise NutritionLookupError(f'CalorieNinjas returned invalid JSON: {e}', status_code=502) from e
        if not isinstance(data, dict):
            raise NutritionLookupError('CalorieNinjas returned an unexpected payload', status_code=502)
        return data


def aggregate_items(items: List[Dict[str, Any]]) -> Dict[str, float]:
    """
    Sum nutrients across items. Calories round to a whole number (INTEGER
    column); everything else to one decimal.
    """
    totals = {column: 0.0 for column in NUTRIENT_FIELDS.values()}
    for item in items:
        for api_key, column in NUTRIENT_FIELDS.items():
            totals[column] += item.get(api_key) or 0

    return {
        column: int(round(value)) if column == 'calories' else round(value, 1)
        for column, value in totals.items()
    }


def analyze_food(client: CalorieNinjasClient, description: str,
                 cache: Optional[NutritionCache] = None) -> Optional[Dict[str, Any]]:
    """
    Estimate nutrition for a meal description.

    Returns {'nutrition': ..., 'api_response': ...}, or None when the API
    recognises no food items.
    """
    if cache is not None:
        cached = cache.get(description)
        if cached is not None:
            return cached

    data = client.lookup(description)
    items = data.get('items') or []
    if not items:
        return None

    result = {'nutrition': aggregate_items(items), 'api_response': data}
    if cache is not None:
        cache.set(description, result)
    return result


def daily_summary(meals: List[Dict[str, Any]]) -> Dict[str, float]:
    totals = {'calories': 0, 'protein_g': 0, 'carbs_g': 0, 'fat_g': 0, 'fiber_g': 0}
    for meal in meals:
        for key in totals:
            totals[key] += meal.get(key) or 0
    return totals


def format_nutrition(meal: Dict[str, Any]) -> str:
    if not meal.get('calories'):
        return 'Nutrition data unavailable'
    return f"{meal['calories']} cal | P: {meal.get('protein_g')}g | C: {meal.get('carbs_g')}g | F: {meal.get('fat_g')}g"


class NutritionService:
    """Meal logging backed by Supabase and CalorieNinjas."""

    def __init__(self, db: Database, client: Optional[CalorieNinjasClient] = None,
                 cache: Optional[NutritionCache] = None):
        self.db = db
        self.client = client
        self.cache = cache if cache is not None else NutritionCache()
        self.log = get_logger()

    def log_meal(self, user_id: str, description: str, logged_at: Optional[str] = None) -> Dict[str, Any]:
        """
        Log a meal, attaching nutrition when the lookup succeeds.

        A failed lookup is logged and the meal is saved without nutrition,
        so manual entry stays possible.
        """
        meal = {
            'user_id': user_id,
            'description': description,
            'logged_at': logged_at or datetime.now(timezone.utc).isoformat(),
        }

        analysis = None
        if self.client is not None:
            try:
                analysis = analyze_food(self.client, description, self.cache)
            except NutritionLookupError as e:
                self.log.warning(f"Nutrition lookup failed: {e}", status=e.status_code)

        if analysis:
            meal.update(analysis['nutrition'])
            meal['api_response'] = analysis['api_response']

        return self.db.meals.create(meal)

    def get_meals(self, user_id: str, start: Optional[str] = None, end: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.db.meals.list(user_id, start, end)

    def delete_meal(self, meal_id: Any) -> None:
        self.db.meals.delete(meal_id)
