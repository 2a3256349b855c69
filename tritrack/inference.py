"""
Groq inference client: coach chat and vision-based plan parsing.

Failures surface as InferenceError subclasses carrying the HTTP status the
API layer should return. Nothing here retries; recovery is the caller's call.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import groq

from tritrack.config_loader import Config, get_config
from tritrack.json_extract import JSONExtractionError, extract_json_object
from tritrack.logger import get_logger


# =============================================================================
# ERRORS
# =============================================================================

class InferenceError(Exception):
    """Base class for inference failures."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class MissingApiKey(InferenceError):
    """No provider API key is configured on the server."""
    pass


class UpstreamError(InferenceError):
    """The provider returned an HTTP error or could not be reached."""
    status_code = 502


class EmptyContent(InferenceError):
    """The provider answered without any message content."""
    pass


class UnparseableResponse(InferenceError):
    """The model's answer held no recoverable JSON object."""
    pass


# =============================================================================
# PROMPTS
# =============================================================================

PLAN_PARSE_PROMPT = """You read triathlon training schedules from images and return them as JSON.

Return ONLY a JSON object with this structure:
{
  "startDate": "YYYY-MM-DD or null",
  "endDate": "YYYY-MM-DD or null",
  "weeks": number or null,
  "workouts": [
    {
      "date": "YYYY-MM-DD or null",
      "week": week number within the plan (1 = first week) or null,
      "day": day of week 1-7 (1 = Monday) or null,
      "discipline": "swim|bike|run|strength|brick|rest",
      "title": "Short workout title",
      "description": "Full workout description",
      "duration": minutes as number or null,
      "distance": kilometers as number or null,
      "intensity": "easy|moderate|hard|race|recovery" or null
    }
  ]
}

Rules:
- Today's date is {today}.
- Convert distances to kilometers (1 mile = 1.60934 km) and durations to minutes.
- Discipline keywords: swim/pool, bike/cycle/ride, run/jog, weights/strength/gym.
- "Brick" is a combined bike+run workout.
- Include rest days with discipline "rest".
- When the image shows a week/day grid, fill "week" and "day" and leave "date" null unless an exact date is printed.
- No markdown fences and no text outside the JSON object."""


def build_parse_prompt(hints: Optional[Dict[str, Any]] = None, today: Optional[date] = None) -> str:
    """System prompt for plan parsing, with anchoring hints appended."""
    today = today or date.today()
    prompt = PLAN_PARSE_PROMPT.replace('{today}', today.isoformat())

    if not hints:
        return prompt

    lines = []
    if hints.get('start_date'):
        lines.append(f"- Week 1, Day 1 (Monday) of this plan is {hints['start_date']}.")
    if hints.get('race_date'):
        lines.append(f"- The race is on {hints['race_date']}; the final week is race week.")
    if hints.get('weeks'):
        lines.append(f"- The plan is {hints['weeks']} weeks long.")
    if (hints.get('image_count') or 1) > 1:
        lines.append(
            f"- This is image {hints.get('image_index', 0) + 1} of {hints['image_count']} "
            "from the same plan; use the week numbers printed in the image."
        )

    if lines:
        prompt += "\n\nPlan context:\n" + "\n".join(lines)
    return prompt


# =============================================================================
# CLIENT
# =============================================================================

class GroqClient:
    """Thin wrapper over the Groq SDK for the two calls tritrack makes."""

    def __init__(self, api_key: Optional[str], config: Optional[Config] = None, client: Any = None):
        if not api_key:
            raise MissingApiKey('Groq API key not configured', status_code=500)
        self.config = config or get_config()
        self.client = client or groq.Groq(
            api_key=api_key,
            timeout=self.config.get('groq.timeout', 60),
            max_retries=0,
        )
        self.log = get_logger()

    def _complete(self, model: str, messages: List[Dict[str, Any]],
                  max_tokens: int, temperature: float) -> str:
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except groq.APIStatusError as e:
            self.log.error("Groq API error", status=e.status_code, model=model)
            raise UpstreamError(e.message or 'Groq API request failed', status_code=e.status_code) from e
        except groq.APIConnectionError as e:
            self.log.error(f"Groq API unreachable: {e}", model=model)
            raise UpstreamError('Groq API unreachable', status_code=502) from e

        content = None
        if response.choices:
            content = response.choices[0].message.content
        if not content:
            raise EmptyContent('No response from AI')
        return content

    def chat(self, messages: List[Dict[str, Any]]) -> str:
        """Send a chat conversation; return the assistant's text."""
        return self._complete(
            self.config.get('groq.chat_model'),
            messages,
            self.config.get('groq.chat_max_tokens', 500),
            self.config.get('groq.chat_temperature', 0.7),
        )

    def parse_image(self, image_b64: str, mime_type: Optional[str] = None,
                    hints: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Read one training-plan image and return the extracted schedule object.

        Args:
            image_b64: Base64-encoded image bytes
            mime_type: Image MIME type (defaults to image/jpeg)
            hints: Optional start_date/race_date/weeks/image_index/image_count

        Raises:
            InferenceError: On provider failure, empty or unparseable output
        """
        messages = [
            {'role': 'system', 'content': build_parse_prompt(hints)},
            {
                'role': 'user',
                'content': [
                    {
                        'type': 'text',
                        'text': 'Read this training plan image and extract all workouts into the JSON format specified.',
                    },
                    {
                        'type': 'image_url',
                        'image_url': {'url': f"data:{mime_type or 'image/jpeg'};base64,{image_b64}"},
                    },
                ],
            },
        ]
        content = self._complete(
            self.config.get('groq.vision_model'),
            messages,
            self.config.get('groq.vision_max_tokens', 4000),
            self.config.get('groq.vision_temperature', 0.2),
        )

        try:
            schedule = extract_json_object(content)
        except JSONExtractionError as e:
            raise UnparseableResponse(f"Could not parse AI response as JSON: {e}") from e

        if not isinstance(schedule.get('workouts', []), list):
            raise UnparseableResponse("AI response 'workouts' is not a list")
        return schedule
