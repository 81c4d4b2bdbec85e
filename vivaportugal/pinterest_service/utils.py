"""
Shared Pinterest helpers.
Provides OAuth state tokens, bearer token extraction, and thin wrappers
around the Pinterest v5 REST endpoints.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import jwt
import requests
from dotenv import load_dotenv
from flask import Response, jsonify, request

# Load .env only once here
load_dotenv()

PINTEREST_APP_ID = os.getenv("PINTEREST_APP_ID")
PINTEREST_APP_SECRET = os.getenv("PINTEREST_APP_SECRET")
PINTEREST_REDIRECT_URI = os.getenv("PINTEREST_REDIRECT_URI")
OAUTH_STATE_SECRET = os.getenv("OAUTH_STATE_SECRET") or PINTEREST_APP_SECRET

AUTH_BASE = "https://www.pinterest.com/oauth/"
API_BASE = "https://api.pinterest.com/v5"
TOKEN_URL = f"{API_BASE}/oauth/token"
OAUTH_SCOPES = "pins:read,pins:write,boards:read,boards:write"

STATE_EXPIRATION_MINUTES = int(os.getenv("OAUTH_STATE_EXPIRATION_MINUTES", 10))
REQUEST_TIMEOUT = 30


class PinterestError(RuntimeError):
    """A Pinterest API call failed. `details` holds the upstream error body."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


# --- OAUTH STATE ---
def _state_secret() -> str:
    if not OAUTH_STATE_SECRET:
        raise RuntimeError("OAUTH_STATE_SECRET is missing. Set it (or PINTEREST_APP_SECRET) in .env")
    return OAUTH_STATE_SECRET


def create_state_token() -> str:
    """
    Generate a short-lived signed `state` value for the OAuth redirect.

    Returns:
        str: Encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "nonce": uuid.uuid4().hex,
        "purpose": "pinterest_oauth",
        "exp": now + timedelta(minutes=STATE_EXPIRATION_MINUTES),
        "iat": now,
    }
    return jwt.encode(payload, _state_secret(), algorithm="HS256")


def verify_state_token(token: Optional[str]) -> bool:
    """Return True if `token` is an unexpired state issued by this service."""
    if not token:
        return False
    try:
        payload = jwt.decode(token, _state_secret(), algorithms=["HS256"])
    except jwt.PyJWTError:
        return False
    return payload.get("purpose") == "pinterest_oauth"


def build_authorize_url(state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": PINTEREST_APP_ID,
        "redirect_uri": PINTEREST_REDIRECT_URI,
        "scope": OAUTH_SCOPES,
        "state": state,
    }
    return f"{AUTH_BASE}?{urlencode(params)}"


# --- BEARER TOKEN ---
def bearer_from_request() -> Tuple[Optional[str], Optional[Response], Optional[int]]:
    """
    Read the Pinterest access token from the Authorization header.

    Accepts either "Bearer <token>" or a bare token.

    Returns:
        tuple: (authorization_header, error_response, status_code)
               If successful, error_response and status_code are None.
    """
    auth = request.headers.get("Authorization", "").strip()
    if not auth:
        return None, jsonify({"error": "Missing token"}), 401

    if not auth.lower().startswith("bearer "):
        auth = f"Bearer {auth}"
    return auth, None, None


# --- API CALLS ---
def _api_ok(resp: requests.Response, ctx: str) -> Dict[str, Any]:
    try:
        resp.raise_for_status()
        return resp.json()
    except requests.HTTPError as e:
        try:
            details = resp.json()
        except ValueError:
            details = resp.text
        raise PinterestError(f"{ctx} | HTTP {resp.status_code}", resp.status_code, details) from e
    except ValueError as e:
        raise PinterestError(f"{ctx} | invalid JSON body", resp.status_code, resp.text) from e


def _request(method: str, url: str, ctx: str, **kwargs: Any) -> Dict[str, Any]:
    try:
        resp = requests.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
    except requests.RequestException as e:
        raise PinterestError(f"{ctx} | {e}") from e
    return _api_ok(resp, ctx)


def exchange_token(form: Dict[str, str]) -> Dict[str, Any]:
    """
    POST to the OAuth token endpoint with app credentials (HTTP basic auth).

    Args:
        form (dict): grant_type plus code/redirect_uri or refresh_token.

    Returns:
        dict: Pinterest token response (access_token, refresh_token, ...).
    """
    if not (PINTEREST_APP_ID and PINTEREST_APP_SECRET):
        raise PinterestError("Pinterest app credentials are not configured")

    return _request(
        "POST",
        TOKEN_URL,
        "Token exchange failed",
        data=form,
        auth=(PINTEREST_APP_ID, PINTEREST_APP_SECRET),
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )


def list_boards(authorization: str) -> List[Dict[str, Any]]:
    data = _request("GET", f"{API_BASE}/boards", "Boards fetch failed", headers={"Authorization": authorization})
    return [{"id": b.get("id"), "name": b.get("name")} for b in data.get("items", [])]


def create_pin(authorization: str, pin: Dict[str, Any]) -> Dict[str, Any]:
    body = {
        "title": pin.get("title"),
        "description": pin.get("description"),
        "board_id": pin.get("board_id"),
        "link": pin.get("link"),
        "media_source": {"source_type": "image_url", "url": pin.get("image_url")},
    }
    # Pinterest rejects explicit nulls for optional fields
    body = {k: v for k, v in body.items() if v is not None}
    return _request("POST", f"{API_BASE}/pins", "Pin create failed", json=body, headers={"Authorization": authorization})
