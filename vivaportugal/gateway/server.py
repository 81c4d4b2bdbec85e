"""
API gateway: combines the ai, media, and pinterest blueprints.
This is the entrypoint for local development and deployment.
"""

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.middleware.proxy_fix import ProxyFix
import os
import logging
from typing import Optional
from dotenv import load_dotenv

from vivaportugal.sanitizer.sanitizer import Sanitizer
from vivaportugal.sanitizer.settings import load_sanitizer_config

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")

VERSION = "v5-production"

# Per client IP, across all /api routes
DEFAULT_RATE_LIMIT = "50 per 15 minutes"


def allowed_origins() -> list:
    """Local Vite dev server plus the deployed frontend, if configured."""
    return [origin for origin in ["http://localhost:5173", os.getenv("FRONTEND_URL")] if origin]


def create_app(sanitizer: Optional[Sanitizer] = None) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        sanitizer (Sanitizer, optional): Overrides the environment-built sanitizer.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    # Deployed behind one reverse proxy (Render)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)
    app.config["MAX_CONTENT_LENGTH"] = int(os.getenv("MAX_UPLOAD_MB", 5)) * 1024 * 1024
    app.config["EXPOSE_MODEL_OUTPUT"] = os.getenv("EXPOSE_MODEL_OUTPUT", "").lower() in ("1", "true", "yes")
    app.config["SANITIZER"] = sanitizer or Sanitizer(load_sanitizer_config())
    app.config["RATE_LIMIT"] = os.getenv("RATE_LIMIT", DEFAULT_RATE_LIMIT)

    CORS(app, resources={
        r"/api/*": {
            "origins": allowed_origins(),
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
        }
    })

    Limiter(
        get_remote_address,
        app=app,
        default_limits=[app.config["RATE_LIMIT"]],
        storage_uri="memory://",
    )

    # --- REGISTER BLUEPRINTS ---
    from vivaportugal.ai_service.routes import ai_blueprint
    from vivaportugal.media_service.routes import media_bp
    from vivaportugal.pinterest_service.routes import pinterest_bp

    app.register_blueprint(ai_blueprint, url_prefix="/api")
    app.register_blueprint(media_bp, url_prefix="/api")
    app.register_blueprint(pinterest_bp, url_prefix="/api/pinterest")

    logging.info("All blueprints registered successfully.")

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(error):
        return jsonify({"error": "File too large"}), 413

    @app.errorhandler(429)
    def too_many_requests(error):
        return jsonify({"error": "Too many requests"}), 429

    # --- HEALTH CHECK ---
    @app.route("/api/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"ok": True, "version": VERSION}), 200

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("GATEWAY_PORT", os.getenv("PORT", 8787)))
    logging.info(f"VivaPortugal AI {VERSION} running on port {port}")
    app.run(host="0.0.0.0", port=port)
