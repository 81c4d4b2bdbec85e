"""
Media service route handlers.
Crops an uploaded photo to the pin frame and publishes it to Cloudinary.
"""

import json
import logging
from typing import Tuple

from flask import Blueprint, Response, jsonify, request

from vivaportugal.media_service.transform import MediaError, build_media_transform, read_image_size
from vivaportugal.sanitizer.settings import get_sanitizer

media_bp = Blueprint("media", __name__)

media_transform = build_media_transform()


@media_bp.before_request
def before_request() -> None:
    logging.info(f"[Media] Incoming {request.method} {request.path}")


@media_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Media] Response {response.status}")
    return response


@media_bp.route("/upload", methods=["POST"])
def upload() -> Tuple[Response, int]:
    """
    Crop and upload a product photo.

    Expects multipart form data with:
    - image (file): The source photo.
    - crop (str, optional): JSON {"x", "y", "width", "height"} in 0..1.
      Missing, unparsable or out-of-range crops are normalized.

    Returns:
        200: {"ok": true, "image": {"pinterest_url", "public_id"}, "crop": {...}}
        400: Missing or undecodable image.
        500: Media service not configured.
        502: Upload failed.
    """
    image = request.files.get("image")
    if image is None:
        return jsonify({"error": "No image"}), 400

    image_bytes = image.read()
    try:
        width, height = read_image_size(image_bytes)
    except ValueError:
        return jsonify({"error": "Invalid image"}), 400

    if media_transform is None:
        return jsonify({"error": "Media service is not configured."}), 500

    try:
        crop = json.loads(request.form.get("crop") or "null")
    except json.JSONDecodeError:
        crop = None

    sanitizer = get_sanitizer()
    relative = sanitizer.normalize_crop(crop)
    box = sanitizer.pixel_crop(relative, width, height)

    try:
        result = media_transform.upload_cropped(image_bytes, box)
    except MediaError as e:
        logging.error(f"[Media] {e}")
        return jsonify({"error": "Upload failed"}), 502

    return jsonify({"ok": True, "image": result, "crop": box.to_dict()}), 200
