"""
Environment-backed settings for the sanitizer.
Provides load_sanitizer_config() for the gateway app factory and
get_sanitizer() for route handlers.
"""

import os
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv
from flask import current_app

from vivaportugal.sanitizer.sanitizer import (
    DEFAULT_BOARDS,
    DEFAULT_FALLBACK_CROP,
    CROP_STRICT,
    Rectangle,
    Sanitizer,
    SanitizerConfig,
)

# Load .env once when settings are first imported
load_dotenv()


def _parse_boards(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return DEFAULT_BOARDS
    boards = tuple(b.strip() for b in value.split(",") if b.strip())
    return boards or DEFAULT_BOARDS


def _parse_rectangle(value: Optional[str]) -> Rectangle:
    """Parse "x,y,width,height" into a Rectangle."""
    if not value:
        return DEFAULT_FALLBACK_CROP
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 4:
        raise ValueError(f"FALLBACK_CROP must be 'x,y,width,height', got {value!r}")
    try:
        x, y, width, height = (float(p) for p in parts)
    except ValueError:
        raise ValueError(f"FALLBACK_CROP values must be numbers, got {value!r}")
    return Rectangle(x, y, width, height)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_sanitizer_config(env: Optional[Mapping[str, str]] = None) -> SanitizerConfig:
    """
    Build a SanitizerConfig from environment variables.

    Args:
        env (Mapping[str, str], optional): Source of settings. Defaults to os.environ.

    Returns:
        SanitizerConfig: Validated configuration.

    Raises:
        ValueError: A variable is present but malformed.
    """
    env = os.environ if env is None else env

    return SanitizerConfig(
        allowed_boards=_parse_boards(env.get("ALLOWED_BOARDS")),
        fallback_crop=_parse_rectangle(env.get("FALLBACK_CROP")),
        crop_policy=(env.get("CROP_POLICY") or CROP_STRICT).strip().lower(),
        title_min_length=_int(env, "TITLE_MIN_LENGTH", 15),
        title_max_length=_int(env, "TITLE_MAX_LENGTH", 100),
        description_min_length=_int(env, "DESCRIPTION_MIN_LENGTH", 250),
        description_max_length=_int(env, "DESCRIPTION_MAX_LENGTH", 850),
        keywords_min=_int(env, "KEYWORDS_MIN", 3),
        keywords_max=_int(env, "KEYWORDS_MAX", 12),
    )


def get_sanitizer() -> Sanitizer:
    """Return the Sanitizer the app factory stored in app.config."""
    return current_app.config["SANITIZER"]
