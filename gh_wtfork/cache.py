"""Disk cache of pull requests that reached a terminal state.

Merged and closed pull requests never change again, so they are kept forever,
one JSON document per upstream repository. The cache is advisory: live search
results always win, and the cache only fills in pull requests the search
endpoint stopped returning.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field, ValidationError

from .config import UTC
from .models import PRState, PullRequest

LOGGER = logging.getLogger(__name__)


class CachedPullRequest(BaseModel):
    number: int
    title: str = ""
    state: PRState
    url: str = ""
    branch: str = ""

    @classmethod
    def from_pull_request(cls, pr: PullRequest) -> "CachedPullRequest":
        return cls(number=pr.number, title=pr.title, state=pr.state, url=pr.url, branch=pr.branch)

    def to_pull_request(self) -> PullRequest:
        return PullRequest(number=self.number, title=self.title, state=self.state, url=self.url, branch=self.branch)


class PRCache(BaseModel):
    """Cached pull requests of one upstream repository, keyed by number."""

    prs: dict[int, CachedPullRequest] = Field(default_factory=dict)
    updated_at: datetime | None = None

    def pull_requests(self) -> list[PullRequest]:
        return [self.prs[number].to_pull_request() for number in sorted(self.prs)]


def cache_file_name(upstream_full_name: str) -> str:
    return upstream_full_name.replace("/", "_").replace(os.sep, "_") + ".json"


class PRCacheStore:
    """Reads and writes :class:`PRCache` documents under ``cache_root``.

    Writes are read-modify-write without locking; two writers for the same
    upstream in one run resolve as last-write-wins.
    """

    def __init__(self, cache_root: Path) -> None:
        self._root = Path(cache_root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, upstream_full_name: str) -> Path:
        return self._root / cache_file_name(upstream_full_name)

    def load(self, upstream_full_name: str) -> PRCache:
        """Return the cache for ``upstream_full_name``; missing or corrupt files read as empty."""

        path = self.path_for(upstream_full_name)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return PRCache()
        except OSError as exc:
            LOGGER.debug("Unable to read PR cache %s: %s", path, exc)
            return PRCache()
        try:
            return PRCache.model_validate_json(raw)
        except (ValidationError, UnicodeDecodeError):
            LOGGER.debug("Ignoring corrupt PR cache %s", path)
            return PRCache()

    def persist(self, upstream_full_name: str, prs: Iterable[PullRequest]) -> PRCache:
        """Overlay the terminal-state ``prs`` onto the stored cache and save it.

        The document is rewritten only when an entry changed, so repeating a
        persist with the same input leaves the file untouched.
        """

        path = self.path_for(upstream_full_name)
        cache = self.load(upstream_full_name)
        before = dict(cache.prs)
        for pr in prs:
            if pr.state.is_terminal:
                cache.prs[pr.number] = CachedPullRequest.from_pull_request(pr)
        if cache.prs == before and path.exists():
            return cache
        cache.updated_at = datetime.now(tz=UTC)
        self._write(path, cache.model_dump_json(indent=2))
        return cache

    def _write(self, path: Path, document: str) -> None:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(document)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def merge_cached(live: list[PullRequest], cache: PRCache) -> list[PullRequest]:
    """Append cached pull requests whose numbers the live results lack.

    Live entries are kept as they are, so a fresh state always beats a cached one.
    """

    seen = {pr.number for pr in live}
    merged = list(live)
    merged.extend(pr for pr in cache.pull_requests() if pr.number not in seen)
    return merged


__all__ = ["CachedPullRequest", "PRCache", "PRCacheStore", "cache_file_name", "merge_cached"]
