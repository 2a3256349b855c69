"""
Training plan import workflow.

Images are parsed concurrently (one inference call each); the merge runs only
after every call has returned. Any failure surfaces as a typed exception:
there is no silent fallback to an empty schedule.
"""

import base64
import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from tritrack.config_loader import Config, get_config
from tritrack.constants import DATE_FORMAT
from tritrack.db import Database
from tritrack.inference import GroqClient, UnparseableResponse
from tritrack.json_extract import JSONExtractionError, extract_json_object
from tritrack.logger import get_logger
from tritrack.models import Plan
from tritrack.plan_dates import (
    InvalidArgument,
    anchor_workouts,
    check_plan,
    check_weeks,
    compute_start_date,
    week_monday,
)
from tritrack.schedule_merge import EmptyResult, merge_schedules

ImageInput = Union[bytes, str, Tuple[Union[bytes, str], Optional[str]], Dict[str, Any]]
StageCallback = Optional[Callable[[str], None]]


def encode_image(image: ImageInput) -> Tuple[str, Optional[str]]:
    """
    Normalize an image input to (base64 text, mime type).

    Accepts raw bytes, base64 text, a (data, mime) pair, or an
    {'image': ..., 'mimeType': ...} mapping.
    """
    mime_type = None
    if isinstance(image, dict):
        data, mime_type = image.get('image'), image.get('mimeType') or image.get('mime_type')
    elif isinstance(image, tuple):
        data, mime_type = image
    else:
        data = image

    if isinstance(data, (bytes, bytearray)):
        data = base64.b64encode(data).decode('ascii')
    if not isinstance(data, str) or not data:
        raise ValueError("Image data is required")
    return data, mime_type


def resolve_start_date(race_date: Optional[str], weeks: Optional[int],
                       sources: Sequence[Dict[str, Any]] = (),
                       start_date: Optional[str] = None) -> Optional[str]:
    """
    Week 1 Monday for a plan: anchored from race date and weeks when both are
    known, else an explicit start date, else the first start date a source
    reports. Start dates that fall mid-week snap back to their Monday.

    Raises:
        InvalidArgument: weeks is given but not a positive int, or a start
                         date is not a YYYY-MM-DD date
    """
    if weeks is not None:
        check_weeks(weeks)
    if race_date and weeks is not None:
        return compute_start_date(race_date, weeks).strftime(DATE_FORMAT)
    if start_date:
        return week_monday(start_date, 'startDate').strftime(DATE_FORMAT)
    for source in sources:
        if isinstance(source, dict) and source.get('startDate'):
            return week_monday(source['startDate'], 'startDate').strftime(DATE_FORMAT)
    return None


def load_json_source(json_text: str) -> Dict[str, Any]:
    """
    Read one schedule source from JSON text.

    Accepts an object with a `workouts` list or a bare list of workouts.
    Text around the JSON (prose, code fences) is tolerated.
    """
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError:
        data = extract_json_object(json_text)

    if isinstance(data, list):
        return {'workouts': data}
    if isinstance(data, dict) and isinstance(data.get('workouts'), list):
        return data
    raise JSONExtractionError("Expected a list of workouts or an object with a 'workouts' list")


class PlanService:
    """Parses, merges and persists training plans."""

    def __init__(self, db: Database, inference: Optional[GroqClient] = None,
                 config: Optional[Config] = None):
        self.db = db
        self.inference = inference
        self.config = config or get_config()
        self.log = get_logger()

    # =========================================================================
    # PARSING
    # =========================================================================

    def parse_images(self, images: Sequence[Tuple[str, Optional[str]]],
                     start_date: Optional[str] = None,
                     hints: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Run one vision call per image concurrently and anchor each result.

        Returns one source dict per image, in input order. The first failure
        (in image order) is raised once every call has finished.
        """
        if self.inference is None:
            raise RuntimeError("PlanService has no inference client")

        base_hints = dict(hints or {})
        if start_date:
            base_hints['start_date'] = start_date

        def parse_one(index: int, image: Tuple[str, Optional[str]]) -> Dict[str, Any]:
            image_hints = dict(base_hints, image_index=index, image_count=len(images))
            schedule = self.inference.parse_image(image[0], image[1], image_hints)
            self.log.info("Parsed plan image", image=index + 1,
                          workouts=len(schedule.get('workouts') or []))
            return schedule

        max_workers = max(1, min(len(images), self.config.get('groq.max_parallel_images', 4)))
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(parse_one, i, image) for i, image in enumerate(images)]
            schedules = [future.result() for future in futures]

        if not start_date:
            try:
                start_date = resolve_start_date(None, None, schedules)
            except InvalidArgument as e:
                raise UnparseableResponse(f"AI response has an unusable startDate: {e}") from e

        sources = []
        for schedule in schedules:
            source = dict(schedule)
            workouts = schedule.get('workouts') or []
            source['workouts'] = anchor_workouts(workouts, start_date) if start_date else list(workouts)
            sources.append(source)
        return sources

    def build_plan(self, sources: Sequence[Dict[str, Any]], plan_name: str,
                   race_date: Optional[str] = None, weeks: Optional[int] = None,
                   start_date: Optional[str] = None) -> Plan:
        """Merge sources into a Plan and log data-quality warnings."""
        start_date = resolve_start_date(race_date, weeks, sources, start_date)
        plan = merge_schedules(sources, start_date, race_date=race_date or None,
                               weeks=weeks, name=plan_name)
        for warning in check_plan(plan):
            self.log.warning(warning, plan=plan_name)
        return plan

    # =========================================================================
    # IMPORTS
    # =========================================================================

    def upload_and_parse_photos(self, user_id: str, images: Sequence[ImageInput], plan_name: str,
                                race_date: Optional[str] = None, weeks: Optional[int] = None,
                                on_stage: StageCallback = None) -> Dict[str, Any]:
        """
        Import a plan from one or more photos of it.

        Raises:
            InvalidArgument: weeks or race_date is invalid
            EmptyResult: No workouts were found in any image
            MalformedWorkout: A parsed workout failed validation
            InferenceError: The vision call failed
        """
        if not images:
            raise ValueError("At least one image is required")
        start_date = resolve_start_date(race_date, weeks)

        if on_stage:
            on_stage('encoding')
        encoded = [encode_image(image) for image in images]

        hints = {'race_date': race_date, 'weeks': weeks}

        if on_stage:
            on_stage('parsing')
        sources = self.parse_images(encoded, start_date, hints)

        plan = self.build_plan(sources, plan_name, race_date, weeks, start_date)
        if not plan.workouts:
            raise EmptyResult(f"No workouts found in {len(images)} image(s)")

        if on_stage:
            on_stage('saving')
        return self.save_plan(user_id, plan)

    def import_from_json(self, user_id: str, plan_name: str, race_date: Optional[str],
                         weeks: Optional[int], json_text: str) -> Dict[str, Any]:
        """
        Import a plan from pasted JSON: an object with a `workouts` list or a
        bare list of workouts. Workouts may carry dates or week/day positions.
        """
        sources = [load_json_source(json_text)]
        start_date = resolve_start_date(race_date, weeks, sources)
        if start_date:
            sources = [dict(sources[0], workouts=anchor_workouts(sources[0]['workouts'], start_date))]

        plan = self.build_plan(sources, plan_name, race_date, weeks, start_date)
        if not plan.workouts:
            raise EmptyResult("No workouts found in the pasted JSON")
        return self.save_plan(user_id, plan)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save_plan(self, user_id: str, plan: Plan) -> Dict[str, Any]:
        """
        Persist a merged plan and its workouts, and make it the active plan.

        If the workout insert fails the plan row is removed again.
        """
        row = self.db.training_plans.create({
            'user_id': user_id,
            'name': plan.name,
            'parsed_schedule': plan.to_dict(),
            'start_date': plan.start_date,
            'end_date': plan.end_date,
            'is_active': True,
        })

        try:
            self.db.planned_workouts.create_many(
                [w.to_planned_row(user_id, row['id']) for w in plan.workouts]
            )
        except Exception:
            self.log.exception("Saving planned workouts failed; removing plan", plan_id=row['id'])
            self.db.training_plans.delete(row['id'])
            raise

        self._deactivate_others(user_id, row['id'])
        self.log.info("Training plan imported", plan_id=row['id'], workouts=len(plan.workouts))
        return row

    def create_manual_plan(self, user_id: str, plan_data: Dict[str, Any],
                           workouts_data: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Create a plan from form data with pre-shaped planned-workout rows."""
        row = self.db.training_plans.create({
            'user_id': user_id,
            'name': plan_data['name'],
            'start_date': plan_data.get('startDate'),
            'end_date': plan_data.get('endDate'),
            'is_active': True,
        })

        if workouts_data:
            self.db.planned_workouts.create_many(
                [dict(w, user_id=user_id, plan_id=row['id']) for w in workouts_data]
            )

        self._deactivate_others(user_id, row['id'])
        return row

    def _deactivate_others(self, user_id: str, plan_id: Any) -> None:
        for other in self.db.training_plans.list(user_id):
            if other['id'] != plan_id and other.get('is_active'):
                self.db.training_plans.update(other['id'], {'is_active': False})

    def set_active_plan(self, user_id: str, plan_id: Any) -> None:
        """Activate one plan and deactivate the rest."""
        self._deactivate_others(user_id, plan_id)
        self.db.training_plans.update(plan_id, {'is_active': True})

    def get_plans(self, user_id: str) -> List[Dict[str, Any]]:
        return self.db.training_plans.list(user_id)

    def get_active_plan(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.db.training_plans.get_active(user_id)

    def delete_plan(self, plan_id: Any) -> None:
        """Delete a plan together with its planned workouts."""
        self.db.planned_workouts.delete_by_plan(plan_id)
        self.db.training_plans.delete(plan_id)
