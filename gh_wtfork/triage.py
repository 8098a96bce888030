"""High level orchestration for analyzing every fork."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

from .analyzer import ProgressCallback
from .config import AnalysisSettings
from .models import Fork, ForkRepository
from .progress import ProgressQueue, ProgressReporter

LOGGER = logging.getLogger(__name__)


class Analyzer(Protocol):
    async def analyze(self, repo: ForkRepository, progress: ProgressCallback | None = None) -> Fork: ...


@dataclass(slots=True)
class ForkFailure:
    index: int
    full_name: str
    error: BaseException


@dataclass(slots=True)
class TriageResult:
    forks: list[Fork] = field(default_factory=list)
    failures: list[ForkFailure] = field(default_factory=list)


class ForkTriage:
    """Analyzes forks with a fixed number of concurrent jobs.

    Each job writes only to its own index of pre-sized result and error lists,
    so collection needs no locking. Results keep enumeration order; callers
    impose the presentation order.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        settings: AnalysisSettings | None = None,
        *,
        show_progress: bool = False,
        write: Callable[[str], None] | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._settings = settings or AnalysisSettings()
        self._show_progress = show_progress
        self._write = write
        self._completed = 0

    @property
    def completed(self) -> int:
        return self._completed

    async def run(self, repos: Sequence[ForkRepository]) -> TriageResult:
        total = len(repos)
        results: list[Fork | None] = [None] * total
        errors: list[BaseException | None] = [None] * total
        semaphore = asyncio.Semaphore(self._settings.max_workers)
        events = ProgressQueue(self._settings.progress_queue_size)
        self._completed = 0

        reporter = None
        reporter_task = None
        if self._show_progress and total:
            reporter = ProgressReporter(
                events,
                total,
                lambda: self._completed,
                interval=self._settings.progress_interval,
                write=self._write,
            )
            reporter_task = asyncio.create_task(reporter.run())

        LOGGER.debug("Analyzing %s forks with %s workers", total, self._settings.max_workers)
        try:
            await asyncio.gather(
                *(
                    self._analyze_at(index, repo, semaphore, events, results, errors)
                    for index, repo in enumerate(repos)
                )
            )
        finally:
            if reporter_task is not None:
                reporter_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reporter_task
            if reporter is not None:
                reporter.clear()

        outcome = TriageResult()
        for index, repo in enumerate(repos):
            error = errors[index]
            if error is not None:
                LOGGER.warning("failed to analyze %s: %s", repo.full_name, error)
                outcome.failures.append(ForkFailure(index=index, full_name=repo.full_name, error=error))
                continue
            fork = results[index]
            if fork is not None:
                outcome.forks.append(fork)
        LOGGER.info("Analyzed %s forks (%s failed)", len(outcome.forks), len(outcome.failures))
        return outcome

    async def _analyze_at(
        self,
        index: int,
        repo: ForkRepository,
        semaphore: asyncio.Semaphore,
        events: ProgressQueue,
        results: list[Fork | None],
        errors: list[BaseException | None],
    ) -> None:
        async with semaphore:
            try:
                results[index] = await self._analyzer.analyze(repo, events.emit)
            except Exception as exc:
                errors[index] = exc
            finally:
                self._completed += 1


__all__ = ["ForkFailure", "ForkTriage", "TriageResult"]
