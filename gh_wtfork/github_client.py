"""HTTP client for GitHub's REST and GraphQL APIs."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable

import httpx

from .config import GitHubSettings
from .graphql_queries import VIEWER_QUERY
from .identity import IdentityError, IdentityScope
from .rate_limiter import ApiFamily, RateLimiter, rate_limit_from_graphql, rate_limit_from_headers

LOGGER = logging.getLogger(__name__)


class GitHubClientError(RuntimeError):
    """Raised when a GitHub request fails permanently."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(GitHubClientError):
    """Raised when the requested identity cannot authenticate against GitHub."""


@dataclass(slots=True, frozen=True)
class ApiRequest:
    """A read call: a REST ``path`` with query ``params``, or a GraphQL ``query``."""

    path: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    query: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def rest(cls, path: str, **params: Any) -> "ApiRequest":
        return cls(path=path.lstrip("/"), params=params)

    @classmethod
    def graphql(cls, query: str, variables: dict[str, Any] | None = None) -> "ApiRequest":
        return cls(query=query, variables=variables or {})

    @property
    def family(self) -> ApiFamily:
        return "graphql" if self.query is not None else "rest"

    def describe(self) -> str:
        return "GraphQL query" if self.query is not None else f"GET /{self.path}"


class GitHubClient:
    """Light-weight GitHub client with retry and rate-limit support."""

    def __init__(
        self,
        settings: GitHubSettings,
        client: httpx.AsyncClient | None = None,
        *,
        token: str | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self._api_url = settings.api_url.rstrip("/")
        self._graphql_url = settings.graphql_url.rstrip("/")
        self._limiter = limiter or RateLimiter()
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "gh-wtfork",
        }
        token = token or settings.token
        if token:
            headers["Authorization"] = f"bearer {token}"
        if client is None:
            self._client = httpx.AsyncClient(headers=headers, timeout=settings.request_timeout)
        else:
            client.headers.update(headers)
            self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, request: ApiRequest) -> bytes:
        """Execute a read call and return the raw response body."""

        await self._limiter.acquire(request.family)
        try:
            response = await self._send(request)
        except GitHubClientError:
            await self._limiter.reset(request.family)
            raise
        return response.content

    async def rest(self, path: str, **params: Any) -> Any:
        body = await self.call(ApiRequest.rest(path, **params))
        try:
            return json.loads(body)
        except ValueError as exc:
            raise GitHubClientError(f"Invalid JSON from GET /{path}") from exc

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        body = await self.call(ApiRequest.graphql(query, variables))
        return json.loads(body)["data"]

    async def check_auth(self, scope: IdentityScope) -> str:
        """Confirm the client is authenticated as the scope's identity; return the login."""

        try:
            data = await self.graphql(VIEWER_QUERY)
        except GitHubClientError as exc:
            raise AuthenticationError(
                f"not authenticated as {scope.label}. Run: gh auth login", exc.status_code
            ) from exc
        login = (data.get("viewer") or {}).get("login", "")
        expected = scope.profile.gh_user if scope.profile else ""
        if expected and login.lower() != expected.lower():
            raise AuthenticationError(f"{scope.label} expects GitHub user {expected!r} but gh is authenticated as {login!r}")
        LOGGER.debug("Authenticated as %s", login)
        return login

    async def _send(self, request: ApiRequest) -> httpx.Response:
        backoff = self._settings.initial_backoff
        attempt = 0

        while True:
            attempt += 1
            try:
                if request.query is not None:
                    response = await self._client.post(
                        self._graphql_url,
                        json={"query": request.query, "variables": request.variables},
                    )
                else:
                    response = await self._client.get(f"{self._api_url}/{request.path}", params=request.params)
            except httpx.RequestError as exc:
                LOGGER.warning("GitHub request error for %s: %s", request.describe(), exc)
                if attempt >= self._settings.max_retries:
                    raise GitHubClientError(f"Maximum retries exceeded for {request.describe()}") from exc
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._settings.max_backoff)
                continue

            if response.status_code in {502, 503, 504}:
                LOGGER.info("GitHub transient HTTP %s for %s", response.status_code, request.describe())
                if attempt >= self._settings.max_retries:
                    raise GitHubClientError(
                        f"GitHub unavailable after {self._settings.max_retries} attempts", response.status_code
                    )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._settings.max_backoff)
                continue

            if response.status_code >= 400:
                message_text = _error_message(response)
                rate_limited = response.status_code in {403, 429} and "rate limit" in message_text.lower()
                if rate_limited and attempt < self._settings.max_retries:
                    delay = _retry_after_seconds(response) or backoff
                    LOGGER.warning("GitHub rate limited: %s", message_text)
                    await asyncio.sleep(min(delay, self._settings.max_backoff))
                    backoff = min(max(backoff * 2, delay), self._settings.max_backoff)
                    continue
                raise GitHubClientError(message_text, response.status_code)

            if request.query is None:
                if info := rate_limit_from_headers(response.headers):
                    await self._limiter.record("rest", info)
                return response

            try:
                payload = response.json()
            except ValueError as exc:
                raise GitHubClientError("Invalid JSON from GraphQL endpoint") from exc

            errors = payload.get("errors")
            if errors:
                if _is_retryable(errors) and attempt < self._settings.max_retries:
                    delay = _retry_delay(errors) or backoff
                    LOGGER.info("Retrying GraphQL call after error: %s", errors)
                    await asyncio.sleep(min(delay, self._settings.max_backoff))
                    backoff = min(backoff * 2, self._settings.max_backoff)
                    continue
                raise GitHubClientError(str(errors))

            data = payload.get("data")
            if data is None:
                raise GitHubClientError("Response payload missing 'data'")
            if info := rate_limit_from_graphql(data):
                await self._limiter.record("graphql", info)
            return response


async def resolve_token(settings: GitHubSettings, scope: IdentityScope) -> str:
    """Pick the credential for the scope: the profile's gh token, else the configured one."""

    if scope.profile is None and settings.token:
        return settings.token
    try:
        return await scope.resolve_token()
    except IdentityError as exc:
        raise AuthenticationError(f"not authenticated as {scope.label}. Run: gh auth login ({exc})") from exc


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"HTTP {response.status_code}"


def _is_retryable(errors: Iterable[dict[str, Any]]) -> bool:
    for error in errors:
        error_type = error.get("type") or ""
        message = (error.get("message") or "").lower()
        if error_type in {"RATE_LIMITED", "ABUSE_DETECTED"}:
            return True
        if "timeout" in message or "try again" in message or "temporary" in message:
            return True
    return False


def _retry_delay(errors: Iterable[dict[str, Any]]) -> float | None:
    for error in errors:
        if "retryAfter" in error:
            try:
                return float(error["retryAfter"])
            except (TypeError, ValueError):
                continue
    return None


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    delta = (retry_at - datetime.now(timezone.utc)).total_seconds()
    return max(delta, 0.0)


__all__ = [
    "ApiRequest",
    "AuthenticationError",
    "GitHubClient",
    "GitHubClientError",
    "resolve_token",
]
