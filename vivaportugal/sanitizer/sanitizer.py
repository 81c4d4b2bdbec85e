"""
Response sanitizer for vision model output.

Turns the raw text a model returns into a ContentRecord:
- title, description and keywords are checked against length/count bounds
  and fail hard when out of bounds
- board is forced onto the allow-list
- crop is forced into the 0..1 range, either by falling back to a fixed
  rectangle ("strict") or by rescaling ("rescale")

Everything here is pure. No I/O, no shared mutable state.
"""

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from vivaportugal.sanitizer.errors import ParseError, ValidationError

# --- POLICY NAMES ---
CROP_STRICT = "strict"
CROP_RESCALE = "rescale"
CROP_POLICIES = (CROP_STRICT, CROP_RESCALE)

REPAIR = "repair"
FAIL = "fail"

# Which fields self-heal and which reject the whole record.
DEFAULT_FIELD_POLICIES: Dict[str, str] = {
    "title": FAIL,
    "description": FAIL,
    "keywords": FAIL,
    "board": REPAIR,
    "crop": REPAIR,
}

# Fields that have a repair routine. The others can only fail.
REPAIRABLE_FIELDS = ("board", "crop")

DEFAULT_BOARDS: Tuple[str, ...] = (
    "Portugal Gift Ideas",
    "Portuguese Home Decor",
    "Lisbon Travel Gifts",
    "Azulejo Art",
)

# Model output keys accepted for each record field, in lookup order.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "title": ("title", "pinterest_title"),
    "description": ("description", "pinterest_description"),
}

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*$")


# --- DATA TYPES ---
@dataclass(frozen=True)
class Rectangle:
    """A crop rectangle expressed as fractions of the image width/height."""

    x: float
    y: float
    width: float
    height: float

    def is_valid(self) -> bool:
        return _in_range(self.x, self.y, self.width, self.height)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class PixelRectangle:
    """Integer crop box in source image pixels."""

    x: int
    y: int
    width: int
    height: int

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


DEFAULT_FALLBACK_CROP = Rectangle(x=0.1, y=0.1, width=0.8, height=0.8)


@dataclass
class ContentRecord:
    """Sanitized Pinterest metadata for one analyzed image."""

    title: str
    description: str
    keywords: List[str]
    board: str
    crop: Rectangle
    # Output key names, so the record serializes back the way the model wrote it.
    title_key: str = "title"
    description_key: str = "description"

    def to_dict(self) -> Dict[str, Any]:
        return {
            self.title_key: self.title,
            self.description_key: self.description,
            "keywords": list(self.keywords),
            "board": self.board,
            "crop": self.crop.to_dict(),
        }


@dataclass
class SanitizerConfig:
    """
    Everything the sanitizer needs to decide what is acceptable.

    Built once at startup (see `settings.load_sanitizer_config`) and handed
    to `Sanitizer`. Raises ValueError on inconsistent settings.
    """

    allowed_boards: Tuple[str, ...] = DEFAULT_BOARDS
    fallback_crop: Rectangle = DEFAULT_FALLBACK_CROP
    crop_policy: str = CROP_STRICT
    title_min_length: int = 15
    title_max_length: int = 100
    description_min_length: int = 250
    description_max_length: int = 850
    keywords_min: int = 3
    keywords_max: int = 12
    field_policies: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FIELD_POLICIES))

    def __post_init__(self) -> None:
        self.allowed_boards = tuple(self.allowed_boards)
        if not self.allowed_boards:
            raise ValueError("allowed_boards must contain at least one board")
        if self.crop_policy not in CROP_POLICIES:
            raise ValueError(f"Unknown crop policy: {self.crop_policy!r}")
        if not self.fallback_crop.is_valid():
            raise ValueError(f"Fallback crop is out of range: {self.fallback_crop}")
        if self.title_min_length > self.title_max_length:
            raise ValueError("title_min_length is greater than title_max_length")
        if self.description_min_length > self.description_max_length:
            raise ValueError("description_min_length is greater than description_max_length")
        if self.keywords_min > self.keywords_max:
            raise ValueError("keywords_min is greater than keywords_max")

        policies = dict(DEFAULT_FIELD_POLICIES)
        policies.update(self.field_policies)
        for name, policy in policies.items():
            if name not in DEFAULT_FIELD_POLICIES:
                raise ValueError(f"Unknown field in field_policies: {name!r}")
            if policy not in (REPAIR, FAIL):
                raise ValueError(f"Unknown policy {policy!r} for field {name!r}")
            if policy == REPAIR and name not in REPAIRABLE_FIELDS:
                raise ValueError(f"Field {name!r} has no repair routine")
        self.field_policies = policies


# --- HELPERS ---
def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false are not coordinates
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints past float range
        return False


def _in_range(x: float, y: float, width: float, height: float) -> bool:
    return 0 <= x <= 1 and 0 <= y <= 1 and 0 < width <= 1 and 0 < height <= 1


def _crop_values(crop: Any) -> Optional[Tuple[float, float, float, float]]:
    """Return the four crop fields as floats, or None if any is unusable."""
    if isinstance(crop, Rectangle):
        crop = crop.to_dict()
    if not isinstance(crop, dict):
        return None
    values = [crop.get(key) for key in ("x", "y", "width", "height")]
    if not all(_is_number(v) for v in values):
        return None
    return tuple(float(v) for v in values)  # type: ignore[return-value]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _lookup(parsed: Dict[str, Any], name: str) -> Tuple[str, Any]:
    """Find a field under any of its accepted keys. Returns (key, value)."""
    for key in FIELD_ALIASES.get(name, (name,)):
        if parsed.get(key) is not None:
            return key, parsed[key]
    return FIELD_ALIASES.get(name, (name,))[0], None


# --- OPERATIONS ---
def parse_model_output(raw: Optional[str]) -> Any:
    """
    Strip an optional code fence and parse the remainder as JSON.

    Args:
        raw (str): Text returned by the vision model.

    Returns:
        Any: The parsed JSON value.

    Raises:
        ParseError: The text is empty after stripping or is not valid JSON.
            The raw text is kept on the error for diagnostics.
    """
    text = raw or ""
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    text = text.strip()

    if not text:
        raise ParseError("Model returned an empty response", code="empty_output", raw=raw)

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Model returned invalid JSON: {e.msg}", code="invalid_json", raw=raw) from e


def normalize_crop(crop: Any, policy: str = CROP_STRICT, fallback: Rectangle = DEFAULT_FALLBACK_CROP) -> Rectangle:
    """
    Force a crop into range. Never raises.

    "strict" replaces anything out of range with the fallback. "rescale"
    treats out-of-range values as being on a larger scale and divides them
    back into 0..1, using the fallback only when that is impossible.
    """
    if policy not in CROP_POLICIES:
        raise ValueError(f"Unknown crop policy: {policy!r}")

    values = _crop_values(crop)
    if values is None:
        return fallback

    x, y, width, height = values
    if _in_range(x, y, width, height):
        return Rectangle(x, y, width, height)
    if policy == CROP_STRICT:
        return fallback

    max_x = max(x + width, 1)
    max_y = max(y + height, 1)
    rescaled = Rectangle(
        x=round(x / max_x, 4),
        y=round(y / max_y, 4),
        width=round(width / max_x, 4),
        height=round(height / max_y, 4),
    )
    # Negative or zero-sized input cannot be rescaled into range
    return rescaled if rescaled.is_valid() else fallback


def _check_text(value: Any, name: str, min_length: int, max_length: int) -> str:
    if value is None:
        raise ValidationError(f"Missing required field: {name}", code="missing_field", field=name)
    if not isinstance(value, str):
        raise ValidationError(f"Field {name} must be a string", code="invalid_type", field=name)
    length = len(value.strip())
    if length < min_length or length > max_length:
        raise ValidationError(
            f"Field {name} must be {min_length}-{max_length} characters (got {length})",
            code=f"{name}_length",
            field=name,
        )
    return value


def _check_keywords(value: Any, min_count: int, max_count: int) -> List[str]:
    if value is None:
        raise ValidationError("Missing required field: keywords", code="missing_field", field="keywords")
    if not isinstance(value, list) or not all(isinstance(k, str) for k in value):
        raise ValidationError("Field keywords must be an array of strings", code="invalid_type", field="keywords")
    if len(value) < min_count or len(value) > max_count:
        raise ValidationError(
            f"Expected {min_count}-{max_count} keywords (got {len(value)})",
            code="keyword_count",
            field="keywords",
        )
    return list(value)


def _resolve_board(value: Any, allowed_boards: Sequence[str], policy: str) -> str:
    if isinstance(value, str) and value in allowed_boards:
        return value
    if policy == FAIL:
        if value is None:
            raise ValidationError("Missing required field: board", code="missing_field", field="board")
        raise ValidationError(f"Board {value!r} is not allowed", code="invalid_board", field="board")
    return allowed_boards[0]


def _resolve_crop(value: Any, config: SanitizerConfig) -> Rectangle:
    if config.field_policies["crop"] == FAIL:
        values = _crop_values(value)
        if values is None or not _in_range(*values):
            raise ValidationError("Field crop is missing or out of range", code="invalid_crop", field="crop")
        return Rectangle(*values)
    return normalize_crop(value, policy=config.crop_policy, fallback=config.fallback_crop)


def validate_content(parsed: Any, allowed_boards: Optional[Sequence[str]] = None, config: Optional[SanitizerConfig] = None) -> ContentRecord:
    """
    Build a ContentRecord from parsed model output.

    Args:
        parsed (Any): JSON value returned by `parse_model_output`.
        allowed_boards (Sequence[str], optional): Board allow-list. Defaults
            to the config's list.
        config (SanitizerConfig, optional): Bounds and policies. Defaults
            to `SanitizerConfig()`.

    Returns:
        ContentRecord: The sanitized record. Board and crop may have been
        replaced; nothing else is changed.

    Raises:
        ValidationError: A fail-policy field is missing, mistyped or out
            of bounds.
    """
    config = config or SanitizerConfig()
    boards = tuple(allowed_boards) if allowed_boards is not None else config.allowed_boards
    if not boards:
        raise ValueError("allowed_boards must contain at least one board")

    if not isinstance(parsed, dict):
        raise ValidationError("Model output must be a JSON object", code="invalid_record")

    title_key, title = _lookup(parsed, "title")
    description_key, description = _lookup(parsed, "description")

    return ContentRecord(
        title=_check_text(title, "title", config.title_min_length, config.title_max_length),
        description=_check_text(
            description, "description", config.description_min_length, config.description_max_length
        ),
        keywords=_check_keywords(parsed.get("keywords"), config.keywords_min, config.keywords_max),
        board=_resolve_board(parsed.get("board"), boards, config.field_policies["board"]),
        crop=_resolve_crop(parsed.get("crop"), config),
        title_key=title_key,
        description_key=description_key,
    )


def pixel_crop(relative: Rectangle, image_width: int, image_height: int) -> PixelRectangle:
    """
    Convert a relative rectangle to pixels, clamped inside the image.

    Width and height are clamped against the space left after the origin,
    so the box never runs past the right or bottom edge, and are at least 1.
    A rectangle with a non-finite field is replaced by the default fallback.
    """
    if image_width < 1 or image_height < 1:
        raise ValueError(f"Image dimensions must be positive, got {image_width}x{image_height}")

    values = _crop_values(relative) or _crop_values(DEFAULT_FALLBACK_CROP)
    # Clamped into 0..1 before scaling
    x, y, width, height = (min(max(v, 0.0), 1.0) for v in values)

    x_px = min(max(_round_half_up(x * image_width), 0), image_width - 1)
    y_px = min(max(_round_half_up(y * image_height), 0), image_height - 1)
    w_px = min(max(_round_half_up(width * image_width), 1), image_width - x_px)
    h_px = min(max(_round_half_up(height * image_height), 1), image_height - y_px)

    return PixelRectangle(x=x_px, y=y_px, width=w_px, height=h_px)


class Sanitizer:
    """Config-bound entry point used by the route handlers."""

    def __init__(self, config: Optional[SanitizerConfig] = None) -> None:
        self.config = config or SanitizerConfig()

    def parse_model_output(self, raw: Optional[str]) -> Any:
        return parse_model_output(raw)

    def normalize_crop(self, crop: Any) -> Rectangle:
        return normalize_crop(crop, policy=self.config.crop_policy, fallback=self.config.fallback_crop)

    def validate_content(self, parsed: Any, allowed_boards: Optional[Sequence[str]] = None) -> ContentRecord:
        return validate_content(parsed, allowed_boards=allowed_boards, config=self.config)

    def pixel_crop(self, relative: Rectangle, image_width: int, image_height: int) -> PixelRectangle:
        return pixel_crop(relative, image_width, image_height)

    def sanitize(self, raw: Optional[str]) -> ContentRecord:
        """Parse and validate in one step. Validation errors keep the raw text."""
        parsed = self.parse_model_output(raw)
        try:
            return self.validate_content(parsed)
        except ValidationError as e:
            e.raw = raw
            raise
