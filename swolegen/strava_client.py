"""
Strava OAuth helpers and a small activities client.

Recent activities feed the analyze phase as ``strava_recent``. Single-user:
the process keeps one token in memory; callers may also pass their own.
"""

import base64
import hashlib
import hmac
import os
import threading
import time
from dataclasses import asdict, dataclass
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from swolegen.cancellation import background
from swolegen.errors import ConfigurationError, FetchError

AUTH_URL = "https://www.strava.com/oauth/authorize"
TOKEN_URL = "https://www.strava.com/oauth/token"
API_URL_BASE = "https://www.strava.com/api/v3"
ACTIVITIES_URL = API_URL_BASE + "/athlete/activities"

DEFAULT_SCOPES = "read,activity:read_all"
CALLBACK_PATH = "/oauth/strava/callback"
STATE_MAX_AGE_SECONDS = 5 * 60
REFRESH_MARGIN_SECONDS = 120
PER_PAGE = 100
DEFAULT_TIMEOUT = 30

ACTIVITY_FIELDS = ("name", "type", "start_date", "suffer_score")


@dataclass(frozen=True)
class Token:
    access_token: str
    refresh_token: str = ""
    expires_at: int = 0
    token_type: str = ""
    scope: str = ""

    @classmethod
    def from_dict(cls, payload):
        return cls(
            access_token=payload.get("access_token") or "",
            refresh_token=payload.get("refresh_token") or "",
            expires_at=int(payload.get("expires_at") or 0),
            token_type=payload.get("token_type") or "",
            scope=payload.get("scope") or "",
        )

    def to_dict(self):
        return asdict(self)


class ProcessTokenCache:
    """Thread-safe holder for the one token this process uses."""

    def __init__(self):
        self._lock = threading.Lock()
        self._token = None

    def load(self):
        with self._lock:
            return self._token

    def store(self, token):
        with self._lock:
            self._token = token

    def compare_and_swap(self, expected, new):
        """Replace the token only if it is still ``expected``; returns True on swap."""
        with self._lock:
            if self._token is not expected:
                return False
            self._token = new
            return True


_process_cache = ProcessTokenCache()


def set_process_token(token):
    _process_cache.store(token)


def get_process_token():
    return _process_cache.load()


class ProcessTokenSource:
    """Reads and updates the in-memory process token."""

    def __init__(self, cache=None):
        self.cache = cache or _process_cache
        self._seen = None

    def current(self):
        token = self.cache.load()
        if token is None:
            raise FetchError("no process token set; run OAuth handshake first")
        self._seen = token
        return token

    def save(self, token):
        """Swap in ``token`` unless another caller already replaced the one we read."""
        if token is None or token is self._seen:
            return
        if self.cache.compare_and_swap(self._seen, token):
            self._seen = token


class UserTokenSource:
    """Wraps a token the caller supplied (e.g. a bearer token on the command line)."""

    def __init__(self, token):
        self.token = token

    def current(self):
        if self.token is None or not self.token.access_token:
            raise FetchError("no user token provided; OAuth handshake required")
        return self.token

    def save(self, token):
        if token is not None:
            self.token = token


# ── Environment ──────────────────────────────────────────────────────


def _required_env(name):
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"{name} not set")
    return value


def scopes():
    return os.getenv("STRAVA_SCOPES") or DEFAULT_SCOPES


def redirect_base():
    return _required_env("STRAVA_REDIRECT_BASE_URL").rstrip("/")


def _b64url(raw):
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text):
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _state_mac(timestamp):
    key = _required_env("STRAVA_STATE_SECRET").encode("utf-8")
    return hmac.new(key, timestamp.encode("ascii"), hashlib.sha256).digest()


def signed_state(now=None):
    """Short-lived HMAC-signed OAuth state: ``<unix ts>.<b64url signature>``."""
    timestamp = str(int(now if now is not None else time.time()))
    return f"{timestamp}.{_b64url(_state_mac(timestamp))}"


def validate_state(raw, now=None):
    """
    Check an OAuth state's signature and age.

    Raises:
        ValueError: bad format, expired or mismatched state
        ConfigurationError: STRAVA_STATE_SECRET not set
    """
    parts = (raw or "").split(".")
    if len(parts) != 2:
        raise ValueError("bad state format")
    timestamp, signature = parts
    try:
        issued = int(timestamp)
    except ValueError:
        raise ValueError("bad state ts") from None

    current = now if now is not None else time.time()
    if current - issued > STATE_MAX_AGE_SECONDS:
        raise ValueError("state expired")

    try:
        got = _b64url_decode(signature)
    except (ValueError, TypeError):
        raise ValueError("state b64") from None
    if not hmac.compare_digest(_state_mac(timestamp), got):
        raise ValueError("state mismatch")


def authorize_url(now=None):
    base = redirect_base()
    query = {
        "client_id": _required_env("STRAVA_CLIENT_ID"),
        "response_type": "code",
        "redirect_uri": base + CALLBACK_PATH,
        "approval_prompt": "auto",
        "scope": scopes(),
        "state": signed_state(now),
    }
    return f"{AUTH_URL}?{urlencode(query)}"


# ── HTTP ─────────────────────────────────────────────────────────────


def build_session(retries):
    """requests Session that retries transient statuses on idempotent calls only."""
    retry = Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _post_token(form, what, session=None):
    session = session or build_session(2)
    form = dict(form)
    form["client_id"] = _required_env("STRAVA_CLIENT_ID")
    form["client_secret"] = _required_env("STRAVA_CLIENT_SECRET")
    try:
        response = session.post(TOKEN_URL, data=form, timeout=DEFAULT_TIMEOUT)
    except requests.RequestException as exc:
        raise FetchError(f"{what}: {exc}") from exc
    if response.status_code >= 300:
        raise FetchError(f"{what} status {response.status_code}")
    try:
        return Token.from_dict(response.json())
    except ValueError as exc:
        raise FetchError(f"{what}: bad token response: {exc}") from exc


def exchange_code(code, session=None):
    """Trade an authorization code for a token."""
    if not code:
        raise ValueError("missing code")
    return _post_token(
        {"code": code, "grant_type": "authorization_code"},
        "token exchange",
        session=session,
    )


def refresh_if_needed(token, session=None, now=None):
    """
    Refresh ``token`` when it expires within two minutes.

    A token without a refresh token (a bare bearer token) is used as-is.
    """
    if token is None:
        raise FetchError("nil token")
    current = now if now is not None else time.time()
    if token.expires_at - current > REFRESH_MARGIN_SECONDS:
        return token
    if not token.refresh_token:
        return token
    return _post_token(
        {"grant_type": "refresh_token", "refresh_token": token.refresh_token},
        "refresh",
        session=session,
    )


class StravaClient:
    """Reads recent activities for the athlete behind a token source."""

    def __init__(self, source, session=None, retries=3):
        self.source = source
        self.session = session or build_session(retries)

    def get_recent_activities(self, since_days, context=None, now=None):
        """
        Fetch one page (up to 100) of activities from the last ``since_days`` days.

        Returns:
            list of dicts with name, type, start_date, suffer_score
        """
        context = context or background()
        context.check()

        token = self.source.current()
        token = context.call(refresh_if_needed, token, session=self.session, now=now)
        self.source.save(token)

        params = {"per_page": PER_PAGE}
        if since_days and since_days > 0:
            current = now if now is not None else time.time()
            params["after"] = int(current - since_days * 24 * 60 * 60)

        print(f"Fetching Strava activities from the last {since_days} day(s)...")
        try:
            response = context.call(
                self.session.get,
                ACTIVITIES_URL,
                params=params,
                headers={"Authorization": f"Bearer {token.access_token}"},
                timeout=max(context.remaining(DEFAULT_TIMEOUT), 0.01),
            )
        except requests.RequestException as exc:
            raise FetchError(f"strava: {exc}") from exc
        context.check()

        if response.status_code >= 300:
            raise FetchError(f"strava status {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(f"strava: bad activities response: {exc}") from exc
        if not isinstance(payload, list):
            raise FetchError("strava: activities response is not a list")

        activities = [
            {key: item.get(key) for key in ACTIVITY_FIELDS}
            for item in payload
            if isinstance(item, dict)
        ]
        print(f"✓ {len(activities)} activities")
        return activities
