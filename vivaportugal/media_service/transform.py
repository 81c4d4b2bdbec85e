"""
Media transformation helpers.
Reads image dimensions with Pillow and uploads cropped pins to Cloudinary.
"""

import logging
import os
from io import BytesIO
from typing import Any, Dict, Optional, Protocol, Tuple

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from PIL import Image, UnidentifiedImageError

from vivaportugal.sanitizer.sanitizer import PixelRectangle

CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "vivaportugal/v5")

# Final pin size (2:3 portrait)
PIN_WIDTH = 1000
PIN_HEIGHT = 1500


class MediaError(RuntimeError):
    """The media service rejected or failed the upload."""


class MediaTransform(Protocol):
    def upload_cropped(self, image_bytes: bytes, box: PixelRectangle) -> Dict[str, Any]:
        ...


def read_image_size(image_bytes: bytes) -> Tuple[int, int]:
    """
    Read (width, height) from encoded image bytes.

    Raises:
        ValueError: The bytes are not a decodable image.
    """
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Invalid image: {e}") from e

    if not width or not height:
        raise ValueError("Invalid image: zero dimension")
    return width, height


def build_transformation(box: PixelRectangle) -> list:
    """Cloudinary transformation chain: exact crop, then fill to pin size."""
    return [
        {
            "crop": "crop",
            "x": box.x,
            "y": box.y,
            "width": box.width,
            "height": box.height,
            "gravity": "north_west",
        },
        {"crop": "fill", "width": PIN_WIDTH, "height": PIN_HEIGHT},
    ]


class CloudinaryTransform:
    """Uploads the source bytes; Cloudinary applies crop+fill before storing."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = CLOUDINARY_FOLDER) -> None:
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )
        self.folder = folder

    def upload_cropped(self, image_bytes: bytes, box: PixelRectangle) -> Dict[str, Any]:
        try:
            result = cloudinary.uploader.upload(
                image_bytes,
                folder=self.folder,
                resource_type="image",
                transformation=build_transformation(box),
            )
        except CloudinaryError as e:
            raise MediaError(f"Cloudinary upload failed: {e}") from e

        return {
            "pinterest_url": result["secure_url"],
            "public_id": result["public_id"],
        }


def build_media_transform() -> Optional[MediaTransform]:
    """Return a CloudinaryTransform, or None when credentials are missing."""
    cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
    api_key = os.getenv("CLOUDINARY_API_KEY")
    api_secret = os.getenv("CLOUDINARY_API_SECRET")

    if not (cloud_name and api_key and api_secret):
        logging.warning("[Media] Cloudinary credentials missing (CLOUDINARY_CLOUD_NAME / KEY / SECRET).")
        return None
    return CloudinaryTransform(cloud_name, api_key, api_secret)
