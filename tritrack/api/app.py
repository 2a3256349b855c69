"""
tritrack API

Server-side proxies that keep provider keys off the browser:
- POST /api/coach       chat messages -> coach reply
- POST /api/parse-plan  plan images (+ race date / weeks) -> merged schedule
"""

import logging
import os

from flask import Flask, jsonify, request

from tritrack.config_loader import get_config
from tritrack.constants import PLAN_WEEKS_MAX, PLAN_WEEKS_MIN
from tritrack.inference import GroqClient, InferenceError
from tritrack.plan_dates import InvalidArgument, check_plan, parse_date
from tritrack.plan_service import PlanService, encode_image, resolve_start_date
from tritrack.schedule_merge import MalformedWorkout

app = Flask(__name__)

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('tritrack-api')

# =============================================================================
# CONFIGURATION
# =============================================================================

IS_PRODUCTION = os.environ.get('FLASK_ENV') == 'production'

if IS_PRODUCTION and not os.environ.get('GROQ_API_KEY'):
    logger.warning("GROQ_API_KEY not set - /api/coach and /api/parse-plan will return 500")


def groq_api_key() -> str:
    """Read per request so a key set after startup is picked up."""
    return os.environ.get('GROQ_API_KEY', '')


# =============================================================================
# SECURITY HEADERS
# =============================================================================

@app.after_request
def set_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-XSS-Protection'] = '1; mode=block'
    return response


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({'error': 'Method not allowed'}), 405


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def parse_weeks(value):
    """Plan length from a request body: None, an int, or a digit string."""
    if value is None or value == '':
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"weeks must be an integer, got {value!r}")

    config = get_config()
    low = config.get('validation.plan_weeks_min', PLAN_WEEKS_MIN)
    high = config.get('validation.plan_weeks_max', PLAN_WEEKS_MAX)
    if not (low <= value <= high):
        raise InvalidArgument(f"weeks must be between {low} and {high}, got {value}")
    return value


def parse_optional_date(value, field):
    if not value:
        return None
    return parse_date(value, field).isoformat()


def collect_images(data: dict) -> list:
    """(base64, mime) pairs from {'image', 'mimeType'} or {'images': [...]}."""
    raw_images = data.get('images')
    if raw_images is None and data.get('image'):
        raw_images = [{'image': data['image'], 'mimeType': data.get('mimeType')}]
    if not isinstance(raw_images, list):
        return []

    images = []
    for item in raw_images:
        if isinstance(item, str):
            item = {'image': item, 'mimeType': data.get('mimeType')}
        if not isinstance(item, dict) or not isinstance(item.get('image'), str):
            raise InvalidArgument("Each image must be a base64 string")
        images.append(encode_image(item))
    return images


# =============================================================================
# ROUTES
# =============================================================================

@app.route('/health', methods=['GET'])
def health():
    """Health check with configuration checks."""
    checks = {
        'service': 'tritrack-api',
        'status': 'ok',
        'groq_configured': bool(groq_api_key()),
    }

    if not checks['groq_configured']:
        checks['status'] = 'degraded'

    status_code = 200 if checks['status'] == 'ok' else 503
    return jsonify(checks), status_code


@app.route('/api/coach', methods=['POST'])
def coach():
    """Relay a chat conversation to the coach model."""
    api_key = groq_api_key()
    if not api_key:
        return jsonify({'error': 'Groq API key not configured'}), 500

    data = request.get_json(silent=True) or {}
    messages = data.get('messages') if isinstance(data, dict) else None
    if not messages or not isinstance(messages, list):
        return jsonify({'error': 'Messages array is required'}), 400

    try:
        content = GroqClient(api_key).chat(messages)
        return jsonify({'content': content})

    except InferenceError as e:
        logger.error(f"Coach inference error ({e.status_code}): {e}")
        return jsonify({'error': str(e)}), e.status_code
    except Exception as e:
        logger.exception(f"Coach API error: {e}")
        return jsonify({'error': 'Internal server error'}), 500


@app.route('/api/parse-plan', methods=['POST'])
def parse_plan():
    """Read one or more plan images and return the merged, dated schedule."""
    api_key = groq_api_key()
    if not api_key:
        return jsonify({'error': 'Groq API key not configured'}), 500

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON'}), 400

    try:
        images = collect_images(data)
        if not images:
            return jsonify({'error': 'Base64 image is required'}), 400

        max_images = get_config().get('validation.max_images', 10)
        if len(images) > max_images:
            return jsonify({'error': f'At most {max_images} images per request'}), 400

        weeks = parse_weeks(data.get('weeks'))
        race_date = parse_optional_date(data.get('raceDate'), 'raceDate')
        start_date = resolve_start_date(
            race_date, weeks, start_date=parse_optional_date(data.get('startDate'), 'startDate')
        )

        service = PlanService(db=None, inference=GroqClient(api_key))
        sources = service.parse_images(images, start_date, {'race_date': race_date, 'weeks': weeks})
        plan = service.build_plan(sources, data.get('name') or '', race_date, weeks, start_date)

        logger.info(f"Parsed {len(plan.workouts)} workouts from {len(images)} image(s)")
        warnings = check_plan(plan)
        if not plan.workouts:
            logger.warning(f"No workouts found in {len(images)} image(s)")
            warnings.append(f"No workouts found in {len(images)} image(s)")
        return jsonify({'schedule': plan.to_dict(), 'warnings': warnings, 'empty': not plan.workouts})

    except InvalidArgument as e:
        return jsonify({'error': str(e)}), 400
    except MalformedWorkout as e:
        logger.warning(f"Malformed workout in AI output: {e}")
        return jsonify({'error': str(e), 'index': e.index, 'field': e.field}), 422
    except InferenceError as e:
        logger.error(f"Parse plan inference error ({e.status_code}): {e}")
        return jsonify({'error': str(e)}), e.status_code
    except Exception as e:
        logger.exception(f"Parse plan API error: {e}")
        return jsonify({'error': 'Internal server error'}), 500


# =============================================================================
# MAIN
# =============================================================================

def run(port: int = None, debug: bool = None):
    port = port or int(os.environ.get('PORT', 3001))
    if debug is None:
        debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    run()
