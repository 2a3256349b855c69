"""
Configuration loader for tritrack.

Loads settings from config.yaml with environment variable overrides.
API keys are not stored here; they are read from the environment when a
request needs them.
"""

import copy
import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Set

import yaml

from tritrack.constants import (
    COACH_CONTEXT_DAYS,
    COACH_HISTORY_MESSAGES,
    PLAN_WEEKS_MAX,
    PLAN_WEEKS_MIN,
)


# Allowlist of environment variables that can be substituted
ALLOWED_ENV_VARS: Set[str] = {
    'TRITRACK_LOG_LEVEL',
    'GROQ_CHAT_MODEL',
    'GROQ_VISION_MODEL',
    'CALORIE_NINJAS_URL',
    'SUPABASE_URL',
    'SUPABASE_KEY',
}

ENV_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')

DEFAULTS: Dict[str, Any] = {
    'groq': {
        'chat_model': 'llama-3.3-70b-versatile',
        'chat_max_tokens': 500,
        'chat_temperature': 0.7,
        'vision_model': 'meta-llama/llama-4-scout-17b-16e-instruct',
        'vision_max_tokens': 4000,
        'vision_temperature': 0.2,
        'timeout': 60,
        'max_parallel_images': 4,
    },
    'calorie_ninjas': {
        'url': 'https://api.calorieninjas.com/v1/nutrition',
        'timeout': 10,
    },
    'supabase': {
        'url': '',
        'key': '',
    },
    'validation': {
        'plan_weeks_min': PLAN_WEEKS_MIN,
        'plan_weeks_max': PLAN_WEEKS_MAX,
        'max_images': 10,
    },
    'coach': {
        'history_messages': COACH_HISTORY_MESSAGES,
        'context_days': COACH_CONTEXT_DAYS,
    },
    'logging': {
        'level': 'INFO',
    },
}


def _deep_merge(base: Dict, override: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Settings manager: defaults overlaid with an optional config.yaml."""

    def __init__(self, config_path: Optional[Path] = None):
        self.path = config_path or self._find_config()
        self._config = self._load_config(self.path)

    @staticmethod
    def _find_config() -> Optional[Path]:
        """First config.yaml found in the usual locations."""
        explicit = os.environ.get('TRITRACK_CONFIG')
        possible_paths = []
        if explicit:
            possible_paths.append(Path(explicit))
        possible_paths += [
            Path.cwd() / 'config.yaml',
            Path.home() / '.tritrack' / 'config.yaml',
        ]

        for path in possible_paths:
            if path.exists():
                return path
        return None

    def _load_config(self, config_path: Optional[Path]) -> Dict:
        if config_path is None:
            return copy.deepcopy(DEFAULTS)

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        return _deep_merge(DEFAULTS, self._process_env_vars(raw_config))

    def _process_env_vars(self, obj: Any) -> Any:
        """
        Recursively process ${VAR} and ${VAR:-default} substitutions.

        SECURITY: Only allowlisted environment variables can be substituted.
        """
        if isinstance(obj, str):
            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ''

                if var_name not in ALLOWED_ENV_VARS:
                    return default

                return os.environ.get(var_name, default)

            return ENV_PATTERN.sub(replace, obj)

        elif isinstance(obj, dict):
            return {k: self._process_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [self._process_env_vars(item) for item in obj]

        return obj

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example: config.get('groq.timeout', 60)
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value


_config = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = Config()
    return _config
