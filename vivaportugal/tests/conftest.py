import os

import pytest
from flask import Flask

# Ensure the OAuth state secret is set before pinterest_service is imported
os.environ["OAUTH_STATE_SECRET"] = "test_secret"

from vivaportugal.sanitizer.sanitizer import Sanitizer, SanitizerConfig

BOARDS = ("Portugal Gift Ideas", "Portuguese Home Decor", "Lisbon Travel Gifts", "Azulejo Art", "Azulejo Dreams")

DESCRIPTION = ("Hand-painted azulejo tile from Porto. " * 7).strip()


@pytest.fixture
def sanitizer_config():
    return SanitizerConfig(allowed_boards=BOARDS)


@pytest.fixture
def app(sanitizer_config):
    app = Flask(__name__)

    from vivaportugal.ai_service.routes import ai_blueprint
    app.register_blueprint(ai_blueprint, url_prefix="/api")

    from vivaportugal.media_service.routes import media_bp
    app.register_blueprint(media_bp, url_prefix="/api")

    from vivaportugal.pinterest_service.routes import pinterest_bp
    app.register_blueprint(pinterest_bp, url_prefix="/api/pinterest")

    app.config["TESTING"] = True
    app.config["SANITIZER"] = Sanitizer(sanitizer_config)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def content():
    """A model response that passes validation untouched."""
    return {
        "pinterest_title": "Azulejo Wall Art From Porto - Authentic Gift",
        "pinterest_description": DESCRIPTION,
        "keywords": ["azulejo tile", "porto souvenir", "portugal gift"],
        "board": "Azulejo Dreams",
        "crop": {"x": 0.1, "y": 0.05, "width": 0.8, "height": 0.9},
    }

