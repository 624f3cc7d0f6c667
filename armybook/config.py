import json
import os

from dotenv import load_dotenv

load_dotenv()

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8080/api/v1")


def _load_number(env_key: str, default: float) -> float:
    raw_value = os.getenv(env_key)
    if not raw_value:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _load_json_list(env_key: str, default: list) -> list:
    raw_value = os.getenv(env_key)
    if not raw_value:
        return default
    try:
        parsed = json.loads(raw_value)
    except json.JSONDecodeError:
        return default
    return parsed if isinstance(parsed, list) else default


REQUEST_TIMEOUT = _load_number("REQUEST_TIMEOUT", 10.0)
SEARCH_DEBOUNCE_SECONDS = _load_number("SEARCH_DEBOUNCE_MS", 300.0) / 1000.0
SELECTOR_PAGE_LIMIT = int(_load_number("SELECTOR_PAGE_LIMIT", 50))
SUGGESTION_LIMIT = int(_load_number("SUGGESTION_LIMIT", 10))
PAGE_SIZE_OPTIONS = [
    int(value)
    for value in _load_json_list("PAGE_SIZE_OPTIONS", [50, 100, 200])
    if isinstance(value, int) and value > 0
] or [50, 100, 200]
