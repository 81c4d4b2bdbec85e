"""
Pinterest service route handlers.

Provides routes for:
- OAuth start (/auth) and callback (/callback)
- Access token refresh (/refresh)
- Board listing (/boards)
- Pin creation (/pins)

Tokens are never stored; the frontend holds them and sends the access
token back in the Authorization header. All HTTP calls live in
`pinterest_service.utils`.
"""

import logging
import os
from typing import Tuple, Union
from urllib.parse import urlencode

from flask import Blueprint, Response, jsonify, redirect, request

from vivaportugal.pinterest_service import utils
from vivaportugal.pinterest_service.utils import PinterestError, bearer_from_request

pinterest_bp = Blueprint("pinterest", __name__)

FRONTEND_URL = os.getenv("FRONTEND_URL")


# --- REQUEST LOGGING ---
@pinterest_bp.before_request
def before_request() -> None:
    # Authorization headers carry Pinterest tokens; log the route only
    logging.info(f"[Pinterest] Incoming {request.method} {request.path}")


@pinterest_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Pinterest] Response {response.status}")
    return response


# --- OAUTH ---
@pinterest_bp.route("/auth", methods=["GET"])
def start_auth() -> Union[Response, Tuple[Response, int]]:
    """
    Redirect the browser to Pinterest's consent screen.

    Returns:
        302: Redirect with client_id, redirect_uri, scopes and a signed state.
        500: App credentials not configured.
    """
    if not (utils.PINTEREST_APP_ID and utils.PINTEREST_REDIRECT_URI):
        return jsonify({"error": "Pinterest OAuth is not configured"}), 500

    return redirect(utils.build_authorize_url(utils.create_state_token()))


@pinterest_bp.route("/callback", methods=["GET"])
def oauth_callback() -> Union[Response, Tuple[Response, int]]:
    """
    Exchange the authorization code for tokens and hand them to the frontend.

    Query params:
    - code (str): Authorization code from Pinterest.
    - state (str): The state issued by /auth.

    Returns:
        302: Redirect to FRONTEND_URL with `access` and `refresh` params.
        200: Token JSON when no FRONTEND_URL is configured.
        400: Missing code or invalid state.
        502: Token exchange failed.
    """
    code = request.args.get("code")
    if not code:
        return jsonify({"error": "Missing authorization code"}), 400
    if not utils.verify_state_token(request.args.get("state")):
        return jsonify({"error": "Invalid OAuth state"}), 400

    try:
        tokens = utils.exchange_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": utils.PINTEREST_REDIRECT_URI or "",
        })
    except PinterestError as e:
        logging.error(f"[Pinterest] OAuth error: {e} {e.details}")
        return jsonify({"error": "OAuth failed"}), 502

    access_token = tokens.get("access_token")
    refresh_token = tokens.get("refresh_token")

    if not FRONTEND_URL:
        return jsonify({"ok": True, "access_token": access_token, "refresh_token": refresh_token}), 200

    query = urlencode({"access": access_token or "", "refresh": refresh_token or ""})
    return redirect(f"{FRONTEND_URL}?{query}")


@pinterest_bp.route("/refresh", methods=["POST"])
def refresh() -> Tuple[Response, int]:
    """
    Trade a refresh token for a new access token.

    Expects JSON: {"refresh_token": "..."}

    Returns:
        200: {"ok": true, "access_token": "..."}
        400: Missing refresh token.
        502: Pinterest rejected the refresh.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    refresh_token = data.get("refresh_token")
    if not refresh_token:
        return jsonify({"error": "Missing refresh token"}), 400

    try:
        tokens = utils.exchange_token({"grant_type": "refresh_token", "refresh_token": refresh_token})
    except PinterestError as e:
        logging.error(f"[Pinterest] Refresh error: {e} {e.details}")
        return jsonify({"error": "Refresh failed"}), 502

    return jsonify({"ok": True, "access_token": tokens.get("access_token")}), 200


# --- BOARDS ---
@pinterest_bp.route("/boards", methods=["GET"])
def boards() -> Tuple[Response, int]:
    """
    List the authenticated user's boards.

    Returns:
        200: {"ok": true, "boards": [{"id", "name"}]}
        401: Missing token.
        502: Pinterest error.
    """
    auth, err, code = bearer_from_request()
    if err:
        return err, code

    try:
        items = utils.list_boards(auth)
    except PinterestError as e:
        logging.error(f"[Pinterest] Boards error: {e} {e.details}")
        return jsonify({"error": "Boards fetch failed"}), 502

    return jsonify({"ok": True, "boards": items}), 200


# --- PINS ---
@pinterest_bp.route("/pins", methods=["POST"])
def create_pin() -> Tuple[Response, int]:
    """
    Publish a pin from an already-uploaded image.

    Expects JSON with:
    - title (str), description (str)
    - image_url (str): Public URL, usually from /api/upload.
    - board_id (str)
    - link (str, optional): Destination URL.

    Returns:
        200: {"ok": true, "id": "<pin id>"}
        400: Missing board_id or image_url.
        401: Missing token.
        502: Pinterest error, with upstream `details`.
    """
    auth, err, code = bearer_from_request()
    if err:
        return err, code

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    if not data.get("board_id") or not data.get("image_url"):
        return jsonify({"error": "board_id and image_url are required"}), 400

    try:
        pin = utils.create_pin(auth, data)
    except PinterestError as e:
        logging.error(f"[Pinterest] Pin error: {e} {e.details}")
        return jsonify({"error": "Pin failed", "details": e.details}), 502

    return jsonify({"ok": True, "id": pin.get("id")}), 200
