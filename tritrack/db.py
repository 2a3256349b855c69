"""
Supabase data access for the six tritrack tables.

Every list is scoped by user and optionally bounded by an inclusive date
range on the table's date column. Supabase errors propagate unchanged.
"""

import os
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from tritrack.config_loader import Config, get_config
from tritrack.constants import (
    TABLE_ACTUAL_WORKOUTS,
    TABLE_COACHING_SESSIONS,
    TABLE_MEALS,
    TABLE_PLANNED_WORKOUTS,
    TABLE_PROFILES,
    TABLE_TRAINING_PLANS,
)


def _first(result) -> Optional[Dict[str, Any]]:
    return result.data[0] if result.data else None


class _Table:
    """Shared helpers for a single Supabase table."""

    table_name = ''

    def __init__(self, client: Client):
        self.client = client

    def _table(self):
        return self.client.table(self.table_name)

    def create(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self._table().insert(row).execute())

    def delete(self, row_id: Any) -> None:
        self._table().delete().eq('id', row_id).execute()


class _UserTable(_Table):
    """A table of per-user rows listed by a date column."""

    date_column = ''
    descending = True

    def list(self, user_id: str, start: Optional[str] = None, end: Optional[str] = None) -> List[Dict]:
        query = (
            self._table()
            .select('*')
            .eq('user_id', user_id)
            .order(self.date_column, desc=self.descending)
        )
        if start:
            query = query.gte(self.date_column, start)
        if end:
            query = query.lte(self.date_column, end)
        return query.execute().data


class Profiles(_Table):
    table_name = TABLE_PROFILES

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        return _first(self._table().select('*').eq('id', user_id).limit(1).execute())

    def update(self, user_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return _first(self._table().update(updates).eq('id', user_id).execute())


class Meals(_UserTable):
    table_name = TABLE_MEALS
    date_column = 'logged_at'


class TrainingPlans(_UserTable):
    table_name = TABLE_TRAINING_PLANS
    date_column = 'created_at'

    def get_active(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self._table()
            .select('*')
            .eq('user_id', user_id)
            .eq('is_active', True)
            .limit(1)
            .execute()
        )
        return _first(result)

    def update(self, plan_id: Any, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return _first(self._table().update(updates).eq('id', plan_id).execute())


class PlannedWorkouts(_UserTable):
    table_name = TABLE_PLANNED_WORKOUTS
    date_column = 'scheduled_date'
    descending = False

    def create_many(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Batch insert; one round trip for a whole plan."""
        if not rows:
            return []
        return self._table().insert(rows).execute().data

    def delete_by_plan(self, plan_id: Any) -> None:
        self._table().delete().eq('plan_id', plan_id).execute()


class ActualWorkouts(_UserTable):
    table_name = TABLE_ACTUAL_WORKOUTS
    date_column = 'completed_at'

    def update(self, workout_id: Any, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return _first(self._table().update(updates).eq('id', workout_id).execute())


class CoachingSessions(_UserTable):
    table_name = TABLE_COACHING_SESSIONS
    date_column = 'updated_at'

    def get_or_create(self, user_id: str) -> Dict[str, Any]:
        """Most recently updated session for the user, created if none exists."""
        existing = _first(
            self._table()
            .select('*')
            .eq('user_id', user_id)
            .order('updated_at', desc=True)
            .limit(1)
            .execute()
        )
        if existing:
            return existing
        return self.create({'user_id': user_id, 'messages': []})

    def add_message(self, session_id: Any, message: Dict[str, str]) -> Optional[Dict[str, Any]]:
        current = _first(self._table().select('messages').eq('id', session_id).limit(1).execute())
        messages = list((current or {}).get('messages') or [])
        messages.append(message)
        return _first(self._table().update({'messages': messages}).eq('id', session_id).execute())

    def clear_messages(self, session_id: Any) -> Optional[Dict[str, Any]]:
        return _first(self._table().update({'messages': []}).eq('id', session_id).execute())


class Database:
    """Repositories over one Supabase client."""

    def __init__(self, client: Client):
        self.client = client
        self.profiles = Profiles(client)
        self.meals = Meals(client)
        self.training_plans = TrainingPlans(client)
        self.planned_workouts = PlannedWorkouts(client)
        self.actual_workouts = ActualWorkouts(client)
        self.coaching_sessions = CoachingSessions(client)

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> 'Database':
        """
        Connect using supabase.url/key from config, falling back to the
        SUPABASE_URL and SUPABASE_KEY environment variables.
        """
        config = config or get_config()
        url = config.get('supabase.url') or os.environ.get('SUPABASE_URL', '')
        key = config.get('supabase.key') or os.environ.get('SUPABASE_KEY', '')
        if not url or not key:
            raise RuntimeError("Supabase not configured: set SUPABASE_URL and SUPABASE_KEY")
        return cls(create_client(url, key))
