import json

import pytest

from vivaportugal.sanitizer.errors import ParseError, ValidationError
from vivaportugal.sanitizer.sanitizer import (
    CROP_RESCALE,
    CROP_STRICT,
    DEFAULT_FALLBACK_CROP,
    FAIL,
    REPAIR,
    Rectangle,
    Sanitizer,
    SanitizerConfig,
    normalize_crop,
    parse_model_output,
    validate_content,
)

BOARDS = ["Portugal Gift Ideas", "Azulejo Art"]


# --- parse_model_output ---
def test_parse_fenced_json():
    assert parse_model_output("```json\n{\"a\":1}\n```") == {"a": 1}


def test_parse_fence_without_language_or_newlines():
    assert parse_model_output('```{"a": 1}```') == {"a": 1}
    assert parse_model_output('```json {"a": 1}```') == {"a": 1}


def test_parse_plain_json_with_whitespace():
    assert parse_model_output('  \n{"board": "Azulejo Art"}\n ') == {"board": "Azulejo Art"}


def test_parse_not_json():
    with pytest.raises(ParseError) as exc:
        parse_model_output("not json")
    assert exc.value.code == "invalid_json"
    assert exc.value.raw == "not json"


@pytest.mark.parametrize("raw", [None, "", "   ", "```json\n```", "```\n\n```"])
def test_parse_empty_output(raw):
    with pytest.raises(ParseError) as exc:
        parse_model_output(raw)
    assert exc.value.code == "empty_output"


def test_parse_error_body_includes_raw_only_when_asked():
    with pytest.raises(ParseError) as exc:
        parse_model_output("{oops")
    assert "raw" not in exc.value.to_dict()
    assert exc.value.to_dict(include_raw=True)["raw"] == "{oops"


# --- normalize_crop ---
@pytest.mark.parametrize("crop", [
    {"x": 0, "y": 0, "width": 1, "height": 1},
    {"x": 0.1, "y": 0.05, "width": 0.8, "height": 0.9},
    {"x": 1, "y": 1, "width": 0.01, "height": 0.01},
    {"x": 0.7, "y": 0.6, "width": 0.9, "height": 0.9},
])
def test_valid_crop_unchanged_under_both_policies(crop):
    for policy in (CROP_STRICT, CROP_RESCALE):
        assert normalize_crop(crop, policy=policy).to_dict() == crop


def test_missing_crop_uses_fallback():
    fallback = Rectangle(0.1, 0.05, 0.8, 0.9)
    for policy in (CROP_STRICT, CROP_RESCALE):
        assert normalize_crop(None, policy=policy) == DEFAULT_FALLBACK_CROP
        assert normalize_crop(None, policy=policy, fallback=fallback) == fallback
    assert DEFAULT_FALLBACK_CROP.is_valid()


@pytest.mark.parametrize("crop", [
    {"x": 0.1, "y": 0.1, "width": 0.8},
    {"x": "0.1", "y": 0.1, "width": 0.8, "height": 0.8},
    {"x": True, "y": 0.1, "width": 0.8, "height": 0.8},
    {"x": float("nan"), "y": 0.1, "width": 0.8, "height": 0.8},
    {"x": 0.1, "y": 0.1, "width": float("inf"), "height": 0.8},
    {"x": 10 ** 400, "y": 0, "width": 1, "height": 1},
    [0.1, 0.1, 0.8, 0.8],
    "center",
])
def test_unusable_crop_uses_fallback(crop):
    for policy in (CROP_STRICT, CROP_RESCALE):
        assert normalize_crop(crop, policy=policy) == DEFAULT_FALLBACK_CROP


@pytest.mark.parametrize("crop", [
    {"x": 100, "y": 50, "width": 800, "height": 900},
    {"x": 0.1, "y": 0.1, "width": 1.2, "height": 0.5},
    {"x": 0, "y": 0, "width": 0, "height": 0.5},
    {"x": -0.1, "y": 0.1, "width": 0.5, "height": 0.5},
])
def test_strict_policy_replaces_out_of_range(crop):
    assert normalize_crop(crop, policy=CROP_STRICT) == DEFAULT_FALLBACK_CROP


def test_rescale_policy_divides_pixel_values():
    rect = normalize_crop({"x": 100, "y": 50, "width": 800, "height": 900}, policy=CROP_RESCALE)
    assert rect == Rectangle(x=0.1111, y=0.0526, width=0.8889, height=0.9474)


def test_rescale_policy_only_scales_overflowing_axis():
    rect = normalize_crop({"x": 0.2, "y": 0.1, "width": 1.3, "height": 0.5}, policy=CROP_RESCALE)
    assert rect == Rectangle(x=round(0.2 / 1.5, 4), y=0.1, width=round(1.3 / 1.5, 4), height=0.5)


@pytest.mark.parametrize("crop", [
    {"x": 100, "y": 50, "width": 800, "height": 900},
    {"x": 3, "y": 0, "width": 2, "height": 7},
    {"x": 0.5, "y": 0.5, "width": 1.5, "height": 1.5},
    {"x": 0, "y": 0, "width": 1920, "height": 1080},
])
def test_rescale_policy_output_in_range_and_idempotent(crop):
    rect = normalize_crop(crop, policy=CROP_RESCALE)
    assert rect.is_valid()
    assert normalize_crop(rect.to_dict(), policy=CROP_RESCALE) == rect


@pytest.mark.parametrize("crop", [
    {"x": -0.2, "y": 0.1, "width": 0.5, "height": 0.5},
    {"x": 0.1, "y": 0.1, "width": -2, "height": 0.5},
    {"x": 0.1, "y": 0.1, "width": 0, "height": 3},
])
def test_rescale_policy_falls_back_when_rescaling_cannot_help(crop):
    assert normalize_crop(crop, policy=CROP_RESCALE) == DEFAULT_FALLBACK_CROP


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        normalize_crop(None, policy="stretch")


# --- validate_content ---
def test_end_to_end_record_passes_through_unchanged(content):
    raw = json.dumps(content)
    config = SanitizerConfig(allowed_boards=["Azulejo Dreams", "Azulejo Art"])

    record = Sanitizer(config).sanitize(raw)

    assert record.to_dict() == content
    assert record.title == content["pinterest_title"]
    assert record.board == "Azulejo Dreams"


def test_plain_field_names_are_kept(content):
    content["title"] = content.pop("pinterest_title")
    content["description"] = content.pop("pinterest_description")
    content["board"] = "Azulejo Art"

    record = validate_content(content, BOARDS)

    assert record.to_dict() == content


def test_null_alias_does_not_hide_other_key(content):
    content["title"] = None
    content["description"] = None
    content["board"] = "Azulejo Art"

    record = validate_content(content, BOARDS)

    assert record.title == content["pinterest_title"]
    assert record.title_key == "pinterest_title"
    assert record.description_key == "pinterest_description"


def test_unknown_board_replaced_with_first_allowed(content):
    content["board"] = "Nonexistent Board"

    record = validate_content(content, BOARDS)

    assert record.board == "Portugal Gift Ideas"


@pytest.mark.parametrize("board", [None, 42, "azulejo art"])
def test_missing_or_mistyped_board_replaced(content, board):
    content["board"] = board
    assert validate_content(content, BOARDS).board == "Portugal Gift Ideas"


def test_invalid_crop_repaired_without_error(content):
    content["board"] = "Azulejo Art"
    content["crop"] = {"x": 5, "y": 0.1, "width": 0.8, "height": 0.8}

    record = validate_content(content, BOARDS)

    assert record.crop == DEFAULT_FALLBACK_CROP


def test_crop_repair_follows_configured_policy(content):
    content["crop"] = {"x": 100, "y": 50, "width": 800, "height": 900}
    config = SanitizerConfig(allowed_boards=BOARDS, crop_policy=CROP_RESCALE)

    record = validate_content(content, config=config)

    assert record.crop == Rectangle(x=0.1111, y=0.0526, width=0.8889, height=0.9474)


def test_two_keywords_rejected(content):
    content["keywords"] = ["azulejo tile", "porto souvenir"]
    with pytest.raises(ValidationError) as exc:
        validate_content(content, BOARDS)
    assert exc.value.code == "keyword_count"
    assert exc.value.field == "keywords"


def test_five_keywords_accepted(content):
    content["keywords"] = ["azulejo tile", "porto souvenir", "portugal gift", "lisbon decor", "tile art"]
    assert len(validate_content(content, BOARDS).keywords) == 5


def test_too_many_keywords_rejected(content):
    content["keywords"] = [f"keyword {i}" for i in range(13)]
    with pytest.raises(ValidationError):
        validate_content(content, BOARDS)


@pytest.mark.parametrize("keywords", ["azulejo, porto, lisbon", ["azulejo", 7, "porto"]])
def test_keywords_must_be_list_of_strings(content, keywords):
    content["keywords"] = keywords
    with pytest.raises(ValidationError) as exc:
        validate_content(content, BOARDS)
    assert exc.value.code == "invalid_type"


def test_short_title_rejected(content):
    content["pinterest_title"] = "Azulejo"
    with pytest.raises(ValidationError) as exc:
        validate_content(content, BOARDS)
    assert exc.value.code == "title_length"


def test_description_bounds(content):
    content["pinterest_description"] = "Too short."
    with pytest.raises(ValidationError) as exc:
        validate_content(content, BOARDS)
    assert exc.value.code == "description_length"

    content["pinterest_description"] = "x" * 851
    with pytest.raises(ValidationError):
        validate_content(content, BOARDS)


@pytest.mark.parametrize("name", ["pinterest_title", "pinterest_description", "keywords"])
def test_missing_required_field(content, name):
    del content[name]
    with pytest.raises(ValidationError) as exc:
        validate_content(content, BOARDS)
    assert exc.value.code == "missing_field"


def test_title_must_be_string(content):
    content["pinterest_title"] = 12345678901234567890
    with pytest.raises(ValidationError) as exc:
        validate_content(content, BOARDS)
    assert exc.value.code == "invalid_type"


def test_non_object_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_content(["not", "an", "object"], BOARDS)
    assert exc.value.code == "invalid_record"


def test_validate_does_not_mutate_input(content):
    content["board"] = "Nonexistent Board"
    content["crop"] = None
    snapshot = json.loads(json.dumps(content))

    validate_content(content, BOARDS)

    assert content == snapshot


def test_sanitize_attaches_raw_to_validation_error(content):
    content["keywords"] = []
    raw = json.dumps(content)
    with pytest.raises(ValidationError) as exc:
        Sanitizer(SanitizerConfig(allowed_boards=BOARDS)).sanitize(raw)
    assert exc.value.raw == raw


# --- field policy table ---
def test_board_fail_policy_raises(content):
    config = SanitizerConfig(allowed_boards=BOARDS, field_policies={"board": FAIL})
    content["board"] = "Nonexistent Board"
    with pytest.raises(ValidationError) as exc:
        validate_content(content, config=config)
    assert exc.value.code == "invalid_board"


def test_crop_fail_policy_raises(content):
    config = SanitizerConfig(allowed_boards=BOARDS, field_policies={"crop": FAIL})
    content["board"] = "Azulejo Art"
    content["crop"] = {"x": 2, "y": 0, "width": 1, "height": 1}
    with pytest.raises(ValidationError) as exc:
        validate_content(content, config=config)
    assert exc.value.code == "invalid_crop"


def test_default_policy_table():
    policies = SanitizerConfig().field_policies
    assert policies == {
        "title": FAIL,
        "description": FAIL,
        "keywords": FAIL,
        "board": REPAIR,
        "crop": REPAIR,
    }


@pytest.mark.parametrize("policies", [
    {"title": REPAIR},
    {"keywords": REPAIR},
    {"board": "ignore"},
    {"color": FAIL},
])
def test_invalid_policy_table_rejected(policies):
    with pytest.raises(ValueError):
        SanitizerConfig(field_policies=policies)


@pytest.mark.parametrize("kwargs", [
    {"allowed_boards": []},
    {"crop_policy": "stretch"},
    {"fallback_crop": Rectangle(0, 0, 0, 1)},
    {"title_min_length": 50, "title_max_length": 10},
    {"keywords_min": 5, "keywords_max": 4},
])
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        SanitizerConfig(**kwargs)


def test_configured_fallback_used_by_sanitizer():
    fallback = Rectangle(0.1, 0.05, 0.8, 0.9)
    sanitizer = Sanitizer(SanitizerConfig(fallback_crop=fallback))
    assert sanitizer.normalize_crop(None) == fallback
