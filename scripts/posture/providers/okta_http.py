"""Okta REST client: authenticated requests, Link pagination, rate-limit backoff."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterator, Optional
from urllib.parse import quote, urlsplit

import requests

from scripts.posture.auth import TokenProvider
from scripts.posture.base_client import OktaClient
from scripts.posture.cancellation import CancellationToken
from scripts.posture.config import HttpConfig
from scripts.posture.errors import RateLimitError, RemoteRequestError
from scripts.posture.models import Application, Factor, OrgSettings, Policy, PolicyRule, User

logger = logging.getLogger("posture.okta")

RATE_LIMIT_RESET_HEADER = "X-Rate-Limit-Reset"


def get_next_link(link_header: str) -> str:
    """Return the path + query of the rel="next" target, or "" if there is none.

    Link header format: <url>; rel="next", <url>; rel="self"
    """
    if not link_header:
        return ""
    for part in link_header.split(","):
        segments = part.split(";")
        is_next = False
        for param in segments[1:]:
            key, _, value = param.strip().partition("=")
            if key.strip().lower() == "rel" and value.strip().strip('"') == "next":
                is_next = True
                break
        if not is_next:
            continue
        target = urlsplit(segments[0].strip().lstrip("<").rstrip(">"))
        if target.query:
            return f"{target.path}?{target.query}"
        return target.path
    return ""


def _error_from_response(resp: requests.Response, resource: str) -> RemoteRequestError:
    """Build a descriptive error, including Okta's errorCode/errorSummary when present."""
    error_code = error_summary = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error_code = body.get("errorCode")
        error_summary = body.get("errorSummary")
    message = f"{resource} API returned status {resp.status_code}"
    if error_code:
        message = f"{message}: {error_code} - {error_summary or ''}"
    return RemoteRequestError(
        message,
        status_code=resp.status_code,
        error_code=error_code,
        error_summary=error_summary,
    )


class OktaHttpClient(OktaClient):
    """Network-backed OktaClient.

    The requests.Session is used as a stateless executor; the auth header is
    taken from the TokenProvider on every request.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        http_config: Optional[HttpConfig] = None,
        token: Optional[CancellationToken] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tokens = token_provider
        self._base = token_provider.base_url
        self._http = http_config or HttpConfig()
        self._cancel = token or CancellationToken()
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._clock = clock

    @property
    def base_url(self) -> str:
        return self._base

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    # ------------------------------------------------------------------
    # Request / backoff
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": self._tokens.authorization_header(),
        }

    def _timeout(self) -> float:
        remaining = self._cancel.remaining()
        if remaining is None:
            return self._http.timeout_s
        return min(self._http.timeout_s, remaining)

    def _rate_limit_wait(self, resp: requests.Response) -> float:
        """Seconds to wait before retrying a 429 response."""
        wait = self._http.default_backoff_s
        reset = resp.headers.get(RATE_LIMIT_RESET_HEADER)
        if reset:
            try:
                wait = int(reset) - self._clock() + 1
            except ValueError:
                logger.warning("Ignoring malformed %s header: %r", RATE_LIMIT_RESET_HEADER, reset)
        if wait > self._http.max_rate_limit_wait_s:
            raise RateLimitError(f"rate limit reset too far in future: {wait:.0f}s")
        if wait < 0:
            wait = self._http.default_backoff_s
        return wait

    def _request(self, method: str, path: str) -> requests.Response:
        """Send one request, waiting out 429s up to max_rate_limit_retries times."""
        url = f"{self._base}{path}"
        max_retries = self._http.max_rate_limit_retries
        attempt = 0

        while True:
            self._cancel.raise_if_cancelled()
            try:
                resp = self._session.request(
                    method, url, headers=self._headers(), timeout=self._timeout()
                )
            except requests.RequestException as exc:
                self._cancel.raise_if_cancelled()
                raise RemoteRequestError(f"{method} {path} failed: {exc}") from exc

            if resp.status_code != 429:
                return resp
            resp.close()

            if attempt >= max_retries:
                raise RateLimitError(f"rate limited after {max_retries} retries")
            wait = self._rate_limit_wait(resp)
            attempt += 1
            logger.warning(
                "Okta rate limit hit, waiting %.1fs (attempt %d/%d)",
                wait, attempt, max_retries,
                extra={"attempt": attempt, "wait_s": round(wait, 3)},
            )
            self._cancel.wait(wait)

    @staticmethod
    def _decode(resp: requests.Response, resource: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteRequestError(
                f"{resource} API returned invalid JSON", status_code=resp.status_code
            ) from exc

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def iter_pages(
        self, path: str, resource: str = "collection", method: str = "GET"
    ) -> Iterator[list[dict]]:
        """Lazily yield each page of a collection, following rel="next" links."""
        page_number = 0
        while path:
            resp = self._request(method, path)
            if resp.status_code != 200:
                raise _error_from_response(resp, resource)
            page = self._decode(resp, resource)
            if not isinstance(page, list):
                raise RemoteRequestError(
                    f"{resource} API returned a non-list page", status_code=resp.status_code
                )
            path = get_next_link(resp.headers.get("Link", ""))
            page_number += 1
            logger.debug(
                "Fetched %s page %d", resource, page_number,
                extra={"resource": resource, "records": len(page)},
            )
            yield page

    def fetch_pages(
        self, method: str, path: str, on_page: Callable[[list[dict]], None]
    ) -> None:
        """Invoke on_page once per page, in server-delivered order."""
        for page in self.iter_pages(path, method=method):
            on_page(page)

    def _get_json(self, path: str, resource: str) -> Any:
        resp = self._request("GET", path)
        if resp.status_code != 200:
            raise _error_from_response(resp, resource)
        return self._decode(resp, resource)

    def _get_list(self, path: str, resource: str) -> list[dict]:
        data = self._get_json(path, resource)
        if not isinstance(data, list):
            raise RemoteRequestError(f"{resource} API returned a non-list payload")
        return data

    # ------------------------------------------------------------------
    # Resource families
    # ------------------------------------------------------------------

    def iter_users(self) -> Iterator[list[User]]:
        path = f"/api/v1/users?limit={self._http.page_limit}"
        for page in self.iter_pages(path, resource="users"):
            yield [User.from_api(u) for u in page]

    def list_user_factors(self, user_id: str) -> list[Factor]:
        path = f"/api/v1/users/{quote(user_id, safe='')}/factors"
        resp = self._request("GET", path)
        if resp.status_code == 404:
            # No factors enrolled
            return []
        if resp.status_code != 200:
            raise _error_from_response(resp, f"factors (user {user_id})")
        data = self._decode(resp, "factors")
        if not isinstance(data, list):
            raise RemoteRequestError("factors API returned a non-list payload")
        return [Factor.from_api(f) for f in data]

    def iter_applications(self) -> Iterator[list[Application]]:
        path = f"/api/v1/apps?limit={self._http.page_limit}"
        for page in self.iter_pages(path, resource="apps"):
            yield [Application.from_api(a) for a in page]

    def list_policies(self, policy_type: str) -> list[Policy]:
        data = self._get_list(f"/api/v1/policies?type={quote(policy_type)}", "policies")
        return [Policy.from_api(p) for p in data]

    def list_policy_rules(self, policy_id: str) -> list[PolicyRule]:
        data = self._get_list(
            f"/api/v1/policies/{quote(policy_id, safe='')}/rules", "policy rules"
        )
        return [PolicyRule.from_api(r) for r in data]

    def get_org_settings(self) -> OrgSettings:
        data = self._get_json("/api/v1/org", "org")
        if not isinstance(data, dict):
            raise RemoteRequestError("org API returned a non-object payload")
        return OrgSettings.from_api(data)
