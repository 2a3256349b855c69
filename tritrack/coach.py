"""
AI coach: builds a personalised system prompt from the athlete's last week of
training and nutrition and relays the conversation to the chat model.

The conversation lives in an explicit CoachSession passed by the caller.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from tritrack.config_loader import Config, get_config
from tritrack.db import Database
from tritrack.inference import GroqClient
from tritrack.logger import get_logger


@dataclass
class CoachSession:
    """One user's persisted coaching conversation."""
    user_id: str
    session_id: Any
    messages: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_row(cls, user_id: str, row: Dict[str, Any]) -> 'CoachSession':
        return cls(user_id=user_id, session_id=row['id'], messages=list(row.get('messages') or []))

    def refresh(self, row: Optional[Dict[str, Any]]) -> None:
        if row is not None:
            self.messages = list(row.get('messages') or [])


@dataclass
class CoachContext:
    """Recent data the system prompt is built from."""
    recent_workouts: List[Dict[str, Any]] = field(default_factory=list)
    recent_meals: List[Dict[str, Any]] = field(default_factory=list)
    profile: Optional[Dict[str, Any]] = None


def _or_not_set(value: Any, unit: str = '') -> str:
    if not value:
        return 'Not set'
    return f"{value} {unit}".strip()


def summarize_workouts(workouts: List[Dict[str, Any]]) -> str:
    """Per-discipline session counts, minutes and distance, plus a total line."""
    by_discipline: Dict[str, Dict[str, float]] = defaultdict(lambda: {'count': 0, 'duration': 0, 'distance': 0.0})
    for w in workouts:
        stats = by_discipline[w.get('discipline') or 'other']
        stats['count'] += 1
        stats['duration'] += w.get('duration_minutes') or 0
        try:
            stats['distance'] += float(w.get('distance_km') or 0)
        except (TypeError, ValueError):
            pass

    lines = []
    for discipline, stats in by_discipline.items():
        line = f"- {discipline}: {stats['count']} sessions, {stats['duration']} min total"
        if stats['distance'] > 0:
            line += f", {stats['distance']:.1f} km"
        lines.append(line)

    total_minutes = sum(w.get('duration_minutes') or 0 for w in workouts)
    lines.append(f"- Total: {len(workouts)} workouts, {round(total_minutes / 60, 1)} hours")
    return "\n".join(lines)


def summarize_nutrition(meals: List[Dict[str, Any]]) -> str:
    """Average daily calories and macros over the days that have meals."""
    daily: Dict[str, Dict[str, float]] = defaultdict(lambda: {'calories': 0, 'protein': 0, 'carbs': 0, 'fat': 0})
    for meal in meals:
        day = str(meal.get('logged_at', ''))[:10]
        totals = daily[day]
        totals['calories'] += meal.get('calories') or 0
        totals['protein'] += meal.get('protein_g') or 0
        totals['carbs'] += meal.get('carbs_g') or 0
        totals['fat'] += meal.get('fat_g') or 0

    days = len(daily)
    if days == 0:
        return 'No nutrition data available.'

    avg = {key: round(sum(d[key] for d in daily.values()) / days) for key in ('calories', 'protein', 'carbs', 'fat')}
    return (
        f"Average daily intake ({days} days tracked):\n"
        f"- Calories: {avg['calories']} kcal\n"
        f"- Protein: {avg['protein']}g\n"
        f"- Carbs: {avg['carbs']}g\n"
        f"- Fat: {avg['fat']}g"
    )


def build_system_prompt(context: CoachContext) -> str:
    """Coach persona plus the athlete's profile and last-week summaries."""
    sections = [
        "You are an expert Ironman triathlon coach and sports nutritionist.\n"
        "You help athletes prepare for their Ironman events with personalized training and nutrition advice.\n"
        "Be encouraging but realistic. Provide specific, actionable advice based on the athlete's data."
    ]

    profile = context.profile
    if profile:
        sections.append(
            "ATHLETE PROFILE:\n"
            f"- Name: {profile.get('full_name') or 'Unknown'}\n"
            f"- Weight: {_or_not_set(profile.get('weight_kg'), 'kg')}\n"
            f"- Height: {_or_not_set(profile.get('height_cm'), 'cm')}\n"
            f"- Event: {profile.get('event_name') or 'Ironman event'}\n"
            f"- Event Date: {_or_not_set(profile.get('event_date'))}\n"
            f"- Weekly Training Goal: {_or_not_set(profile.get('weekly_training_hours_goal'), 'hours')}\n"
            f"- Daily Calorie Goal: {_or_not_set(profile.get('daily_calorie_goal'), 'cal')}"
        )

    if context.recent_workouts:
        sections.append(f"LAST 7 DAYS TRAINING:\n{summarize_workouts(context.recent_workouts)}")
    else:
        sections.append("LAST 7 DAYS TRAINING: No workouts logged yet.")

    if context.recent_meals:
        sections.append(f"LAST 7 DAYS NUTRITION:\n{summarize_nutrition(context.recent_meals)}")
    else:
        sections.append("LAST 7 DAYS NUTRITION: No meals logged yet.")

    sections.append(
        "Keep responses concise and focused. Use the athlete's data to give personalized feedback.\n"
        "If they ask about their progress, reference their actual logged data.\n"
        "If data is missing, encourage them to log more consistently for better insights."
    )
    return "\n\n".join(sections)


class CoachService:
    """Chat with the AI coach over a persisted session."""

    def __init__(self, db: Database, inference: GroqClient, config: Optional[Config] = None):
        self.db = db
        self.inference = inference
        self.config = config or get_config()
        self.log = get_logger()

    def open_session(self, user_id: str) -> CoachSession:
        return CoachSession.from_row(user_id, self.db.coaching_sessions.get_or_create(user_id))

    def get_recent_context(self, user_id: str, now: Optional[datetime] = None) -> CoachContext:
        """Last N days of actual workouts and meals, plus the profile."""
        now = now or datetime.now(timezone.utc)
        days = self.config.get('coach.context_days', 7)
        since = (now - timedelta(days=days)).isoformat()
        return CoachContext(
            recent_workouts=self.db.actual_workouts.list(user_id, since) or [],
            recent_meals=self.db.meals.list(user_id, since) or [],
            profile=self.db.profiles.get(user_id),
        )

    def send_message(self, session: CoachSession, user_message: str) -> str:
        """
        Ask the coach; persists both the question and the answer.

        Raises:
            InferenceError: The chat call failed (nothing is persisted)
        """
        context = self.get_recent_context(session.user_id)
        history = self.config.get('coach.history_messages', 10)

        api_messages = [{'role': 'system', 'content': build_system_prompt(context)}]
        api_messages += session.messages[-history:] if history else []
        api_messages.append({'role': 'user', 'content': user_message})

        reply = self.inference.chat(api_messages)

        self.db.coaching_sessions.add_message(session.session_id, {'role': 'user', 'content': user_message})
        session.refresh(
            self.db.coaching_sessions.add_message(session.session_id, {'role': 'assistant', 'content': reply})
        )
        return reply

    def clear_chat(self, session: CoachSession) -> None:
        self.db.coaching_sessions.clear_messages(session.session_id)
        session.messages = []
