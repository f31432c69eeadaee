"""Strava API v3 client: refresh-token exchange plus the read endpoints the sync needs."""

import logging
import time

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import STRAVA_BASE_URL, STRAVA_TOKEN_URL, get_http_retries, get_http_timeout
from errors import CredentialError, MalformedResponseError, RemoteFetchError

logger = logging.getLogger(__name__)

# Delay between API calls (seconds)
API_CALL_DELAY = 0.5


class StravaClient:
    """Strava API client holding a short-lived access token."""

    def __init__(self, access_token=None, refresh_token=None,
                 client_id=None, client_secret=None, base_url=None,
                 token_url=None, timeout=None, retries=None,
                 call_delay=API_CALL_DELAY):
        self.access_token = access_token or ""
        self.refresh_token = refresh_token or ""
        self.client_id = client_id or ""
        self.client_secret = client_secret or ""
        self.base_url = (base_url or STRAVA_BASE_URL).rstrip("/")
        self.token_url = token_url or STRAVA_TOKEN_URL
        self.timeout = timeout if timeout is not None else get_http_timeout()
        self.call_delay = call_delay
        self.athlete_id = None

        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        })
        # Transport-level retries stay off unless STRAVA_HTTP_RETRIES is set;
        # a failed required fetch is fatal to the run.
        retry = Retry(
            total=retries if retries is not None else get_http_retries(),
            backoff_factor=2,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
            raise_on_status=False,
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retry))

    def _update_auth_header(self):
        """Update session Authorization header after token refresh."""
        self.session.headers["Authorization"] = f"Bearer {self.access_token}"

    def refresh_access_token(self):
        """Exchange the refresh token for an access token and the athlete id.

        Returns (access_token, athlete_id). athlete_id is None when the token
        response carries no athlete object.
        """
        try:
            resp = requests.post(
                self.token_url,
                json={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CredentialError(f"Strava token refresh failed: {e}") from e
        if not resp.ok:
            raise CredentialError(
                f"Strava token refresh failed: {resp.status_code} {resp.text}"
            )
        data = resp.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            raise CredentialError("Strava token refresh response missing access_token")

        self.access_token = data["access_token"]
        self.refresh_token = data.get("refresh_token") or self.refresh_token
        self.athlete_id = (data.get("athlete") or {}).get("id")
        self._update_auth_header()
        return self.access_token, self.athlete_id

    def _get(self, path, what, params=None):
        """GET a JSON document, raising RemoteFetchError on a non-2xx answer."""
        url = f"{self.base_url}{path}"
        resp = self.session.get(url, params=params, timeout=self.timeout)
        if not resp.ok:
            raise RemoteFetchError(what, resp.status_code, resp.text)
        if self.call_delay:
            time.sleep(self.call_delay)
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"Strava {what} response is not JSON: {e}") from e

    def get_athlete_stats(self, athlete_id=None):
        """All-time run/ride totals for the athlete, or None without an athlete id."""
        athlete_id = athlete_id or self.athlete_id
        if not athlete_id:
            return None
        return self._get(f"/athletes/{athlete_id}/stats", "athlete stats")

    def get_activities(self, after=None, page=1, per_page=200):
        """Get a page of athlete activity summaries."""
        params = {"per_page": per_page, "page": page}
        if after and after > 0:
            params["after"] = int(after)
        data = self._get("/athlete/activities", "activities", params=params)
        if not isinstance(data, list):
            raise MalformedResponseError("Strava activities response is not an array")
        return data

    def get_activity(self, activity_id):
        """Get detailed information for a single activity."""
        return self._get(
            f"/activities/{activity_id}",
            "activity detail",
            params={"include_all_efforts": "false"},
        )
