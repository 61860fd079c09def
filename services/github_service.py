"""
GitHub service: fetches follower counts from the public REST API

One request per participant, bounded timeout, no retries. Every failure
mode surfaces as UpstreamRefreshError so the caller can fall back to the
stored value.
"""
from functools import lru_cache
from typing import Dict, Optional
import logging

import requests

from core.exceptions import UpstreamRefreshError
from database import get_settings
from services.ranking_service import ParticipantSnapshot

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
LOOKUP_KEYS = ("id", "username")


class GitHubMetricSource:
    """Follower count lookups against api.github.com"""

    def __init__(
        self,
        api_base: str = "https://api.github.com",
        token: Optional[str] = None,
        timeout: float = 5.0,
        lookup_key: str = "id",
        user_agent: str = "follower-leaderboard",
        session: Optional[requests.Session] = None
    ):
        if lookup_key not in LOOKUP_KEYS:
            raise ValueError(f"lookup_key must be one of {LOOKUP_KEYS}, got {lookup_key!r}")
        self.api_base = api_base.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.lookup_key = lookup_key
        self.user_agent = user_agent
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        h = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": self.user_agent,
        }
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    def url_for(self, participant: ParticipantSnapshot) -> str:
        """
        Build the profile URL for a participant

        - lookup_key="id": /user/{github_id}, stable across username changes
        - lookup_key="username": /users/{username}
        """
        if self.lookup_key == "id":
            return f"{self.api_base}/user/{participant.github_id}"
        return f"{self.api_base}/users/{participant.username}"

    def fetch_followers(self, participant: ParticipantSnapshot) -> int:
        """
        Fetch the current follower count for one participant

        Raises:
            UpstreamRefreshError: network error or timeout, non-200 status,
                non-JSON body, or a missing/invalid followers field
        """
        url = self.url_for(participant)
        logger.debug(f"Fetching followers for {participant.github_id}: GET {url}")
        try:
            resp = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamRefreshError(participant.username, f"request failed: {e}") from e

        if resp.status_code != 200:
            reason = f"HTTP {resp.status_code}"
            if resp.status_code in (403, 429):
                remaining = resp.headers.get("X-RateLimit-Remaining")
                reset = resp.headers.get("X-RateLimit-Reset")
                reason += f" (rate limit remaining={remaining}, reset={reset})"
            raise UpstreamRefreshError(participant.username, reason)

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamRefreshError(participant.username, "malformed JSON body") from e

        followers = data.get("followers") if isinstance(data, dict) else None
        # bool is a subclass of int, reject it explicitly
        if not isinstance(followers, int) or isinstance(followers, bool) or followers < 0:
            raise UpstreamRefreshError(
                participant.username, f"invalid followers value: {followers!r}"
            )
        return followers


@lru_cache()
def get_metric_source() -> GitHubMetricSource:
    """FastAPI dependency: process-wide GitHub client built from settings"""
    s = get_settings()
    return GitHubMetricSource(
        api_base=s.github_api_base,
        token=s.github_token,
        timeout=s.github_timeout_seconds,
        lookup_key=s.github_lookup_key,
        user_agent=s.github_user_agent
    )
