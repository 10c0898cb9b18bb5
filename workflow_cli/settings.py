from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from workflow_cli.rules.builtins import DEFAULT_NOW_FORMAT, DEFAULT_TIMEZONE, build_default_registry
from workflow_cli.rules.conditions import DEFAULT_REGEX_TIMEOUT_SECONDS, EvaluationOptions


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppSettings:
    timezone: str = DEFAULT_TIMEZONE
    now_format: str = DEFAULT_NOW_FORMAT
    regex_timeout_seconds: float = DEFAULT_REGEX_TIMEOUT_SECONDS
    context_path: Path | None = None
    preview_max_chars: int = 2000

    def evaluation_options(self) -> EvaluationOptions:
        return EvaluationOptions(
            builtins=build_default_registry(self.timezone, now_format=self.now_format),
            timezone=self.timezone,
            regex_timeout_seconds=self.regex_timeout_seconds,
        )



def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default



def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_timezone(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        return default
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning("Unknown timezone %r in %s, using %s.", value, name, default)
        return default
    return value



def load_settings() -> AppSettings:
    load_dotenv()

    raw_context = os.getenv("WORKFLOW_CONTEXT_PATH", "").strip()
    regex_timeout = _get_float("WORKFLOW_REGEX_TIMEOUT_SECONDS", DEFAULT_REGEX_TIMEOUT_SECONDS)

    return AppSettings(
        timezone=_get_timezone("WORKFLOW_TIMEZONE", DEFAULT_TIMEZONE),
        now_format=os.getenv("WORKFLOW_NOW_FORMAT", DEFAULT_NOW_FORMAT),
        regex_timeout_seconds=regex_timeout if regex_timeout > 0 else DEFAULT_REGEX_TIMEOUT_SECONDS,
        context_path=Path(raw_context).expanduser() if raw_context else None,
        preview_max_chars=_get_int("WORKFLOW_PREVIEW_MAX_CHARS", 2000),
    )
