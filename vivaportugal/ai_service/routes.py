"""
AI service route handlers.

Provides:
- Image analysis (/analyze): sends the uploaded photo to the vision model
  and returns sanitized Pinterest metadata.

The model client comes from `ai_service.vision`; all parsing and
validation is delegated to the sanitizer.
"""

import logging
from typing import Tuple

from flask import Blueprint, Response, current_app, jsonify, request

from vivaportugal.ai_service.vision import VisionError, build_system_prompt, build_vision_client
from vivaportugal.sanitizer.errors import SanitizerError
from vivaportugal.sanitizer.settings import get_sanitizer

# --- BLUEPRINT SETUP ---
ai_blueprint = Blueprint("ai", __name__)

# --- CLIENT INITIALIZATION ---
vision_client = build_vision_client()


# --- REQUEST LOGGING ---
@ai_blueprint.before_request
def before_request() -> None:
    logging.info(f"[AI] Incoming {request.method} {request.path}")


@ai_blueprint.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[AI] Response {response.status}")
    return response


# --- ROUTES ---
@ai_blueprint.route("/analyze", methods=["POST"])
def analyze() -> Tuple[Response, int]:
    """
    Generate Pinterest SEO metadata for a product photo.

    Expects multipart form data with:
    - image (file): The product photo, any image/* type.

    Returns:
        200: JSON record with title, description, keywords, board and crop.
        400: Missing, empty or non-image upload.
        422: Model output could not be parsed or failed validation.
        500: No vision model configured.
        502: The vision model request failed.
    """
    image = request.files.get("image")
    if image is None:
        return jsonify({"error": "No image"}), 400
    if not (image.mimetype or "").startswith("image/"):
        return jsonify({"error": "Invalid file type"}), 400

    if vision_client is None:
        return jsonify({"error": "AI service is not configured."}), 500

    image_bytes = image.read()
    if not image_bytes:
        return jsonify({"error": "Empty image"}), 400

    sanitizer = get_sanitizer()
    config = sanitizer.config
    system_prompt = build_system_prompt(
        config.allowed_boards,
        title_bounds=(config.title_min_length, config.title_max_length),
        description_bounds=(config.description_min_length, config.description_max_length),
        keyword_bounds=(config.keywords_min, config.keywords_max),
    )

    try:
        raw = vision_client.analyze_image(image_bytes, image.mimetype, system_prompt)
    except VisionError as e:
        logging.error(f"[AI] {vision_client.name} error: {e}")
        return jsonify({"error": "AI failed"}), 502

    try:
        record = sanitizer.sanitize(raw)
    except SanitizerError as e:
        logging.warning(f"[AI] Rejected model output ({e.code}): {e.message}")
        include_raw = bool(current_app.config.get("EXPOSE_MODEL_OUTPUT"))
        return jsonify(e.to_dict(include_raw=include_raw)), 422

    return jsonify(record.to_dict()), 200
