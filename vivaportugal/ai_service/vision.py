"""
Vision model clients.

Each client takes image bytes plus a system prompt and returns the model's
raw text. Parsing and validation happen in the sanitizer, not here.
OpenAI is preferred; Gemini is the fallback when only GEMINI_API_KEY is set.
"""

import base64
import logging
import os
from typing import Optional, Protocol, Sequence

# --- OPENAI IMPORTS ---
from openai import OpenAI, OpenAIError

# --- GEMINI IMPORTS ---
from google import genai
from google.genai import types
from google.genai.errors import APIError

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

USER_PROMPT = "Generate Pinterest SEO."

SYSTEM_PROMPT_TEMPLATE = """
You are a Pinterest SEO expert for VivaPortugal, a shop selling Portuguese products.
Analyze the product image and return ONLY valid JSON. No markdown. No text.

Return an object with exactly these keys:
- "pinterest_title": {title_min}-{title_max} characters, starting with the primary keyword.
- "pinterest_description": {description_min}-{description_max} characters, commercial buyer intent.
- "keywords": an array of {keywords_min}-{keywords_max} short search phrases.
- "board": one of: {boards}.
- "crop": {{"x": number, "y": number, "width": number, "height": number}} relative values 0..1
  framing the product for a 1000x1500 portrait pin.

Audience: US tourists, the Portuguese diaspora, and gift buyers.
Use keywords naturally: portugal, azulejo, porto, lisbon, portuguese gifts.
"""


class VisionError(RuntimeError):
    """The vision model call failed before any text came back."""


class VisionModelClient(Protocol):
    name: str

    def analyze_image(self, image_bytes: bytes, mimetype: str, system_prompt: str) -> str:
        ...


def build_system_prompt(
    allowed_boards: Sequence[str],
    title_bounds: tuple = (15, 100),
    description_bounds: tuple = (250, 850),
    keyword_bounds: tuple = (3, 12),
) -> str:
    """
    Render the system prompt with the current board allow-list and bounds.

    Args:
        allowed_boards (Sequence[str]): Boards the model may choose from.
        title_bounds (tuple): (min, max) title length.
        description_bounds (tuple): (min, max) description length.
        keyword_bounds (tuple): (min, max) keyword count.

    Returns:
        str: The prompt text.
    """
    return SYSTEM_PROMPT_TEMPLATE.format(
        title_min=title_bounds[0],
        title_max=title_bounds[1],
        description_min=description_bounds[0],
        description_max=description_bounds[1],
        keywords_min=keyword_bounds[0],
        keywords_max=keyword_bounds[1],
        boards=", ".join(allowed_boards),
    )


class OpenAIVisionClient:
    """Chat completions with an inline base64 image and JSON response format."""

    name = "openai"

    def __init__(self, api_key: str, model: str = OPENAI_MODEL) -> None:
        self.client = OpenAI(api_key=api_key)
        self.model = model

    def analyze_image(self, image_bytes: bytes, mimetype: str, system_prompt: str) -> str:
        image_b64 = base64.b64encode(image_bytes).decode("ascii")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system_prompt},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": USER_PROMPT},
                            {"type": "image_url", "image_url": {"url": f"data:{mimetype};base64,{image_b64}"}},
                        ],
                    },
                ],
            )
        except OpenAIError as e:
            raise VisionError(f"OpenAI request failed: {e}") from e

        try:
            return response.choices[0].message.content or ""
        except (IndexError, AttributeError) as e:
            raise VisionError(f"OpenAI returned no message: {e}") from e


class GeminiVisionClient:
    """generate_content with the image as an inline part and a JSON mime type."""

    name = "gemini"

    def __init__(self, api_key: str, model: str = GEMINI_MODEL) -> None:
        self.client = genai.Client(api_key=api_key)
        self.model = model

    def analyze_image(self, image_bytes: bytes, mimetype: str, system_prompt: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=image_bytes, mime_type=mimetype),
                    USER_PROMPT,
                ],
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    response_mime_type="application/json",
                ),
            )
        except APIError as e:
            raise VisionError(f"Gemini request failed: {e}") from e

        try:
            return response.text or ""
        except (AttributeError, ValueError) as e:
            raise VisionError(f"Gemini returned no text: {e}") from e


def build_vision_client(openai_api_key: Optional[str] = None, gemini_api_key: Optional[str] = None) -> Optional[VisionModelClient]:
    """
    Pick a vision client from the available API keys.

    Tries OpenAI first, then Gemini. Returns None when neither can be
    initialized; the analyze route reports that as a configuration error.
    """
    openai_api_key = openai_api_key if openai_api_key is not None else os.getenv("OPENAI_API_KEY")
    gemini_api_key = gemini_api_key if gemini_api_key is not None else os.getenv("GEMINI_API_KEY")

    # 1. Try to initialize OpenAI first
    if openai_api_key:
        try:
            client = OpenAIVisionClient(api_key=openai_api_key)
            logging.info("[AI] Successfully initialized OpenAI client.")
            return client
        except OpenAIError as e:
            logging.warning(f"[AI] OpenAI client initialization failed: {e}. Trying fallback.")

    # 2. If OpenAI failed, try Gemini
    if gemini_api_key:
        try:
            client = GeminiVisionClient(api_key=gemini_api_key)
            logging.info("[AI] Successfully initialized Gemini client.")
            return client
        except (APIError, ValueError) as e:
            logging.warning(f"[AI] Gemini client initialization failed: {e}.")

    logging.warning("[AI] No vision model configured. Set OPENAI_API_KEY or GEMINI_API_KEY.")
    return None
