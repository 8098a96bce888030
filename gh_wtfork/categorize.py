"""Fork classification and presentation ordering."""

from __future__ import annotations

from typing import Iterable

from .models import Category, Fork

CATEGORY_RANK = {
    Category.MAINTAINED: 0,
    Category.CONTRIBUTION: 1,
    Category.UNTOUCHED: 2,
}


def categorize(ahead: int, non_default_branches: int, has_open_pr: bool) -> Category:
    """Classify a fork.

    Ahead of upstream means the fork is a version of its own; otherwise any
    extra branch or open pull request marks it as a contribution vehicle.
    Unknown counts are passed as zero.
    """

    if ahead > 0:
        return Category.MAINTAINED
    if non_default_branches > 0 or has_open_pr:
        return Category.CONTRIBUTION
    return Category.UNTOUCHED


def categorize_fork(fork: Fork) -> Category:
    return categorize(fork.ahead, len(fork.non_default_branches), fork.has_open_pr)


def filter_forks(forks: Iterable[Fork], show_all: bool = False) -> list[Fork]:
    if show_all:
        return list(forks)
    return [fork for fork in forks if fork.category is not Category.UNTOUCHED]


def sort_forks(forks: Iterable[Fork]) -> list[Fork]:
    """Order by category rank, then by name, independent of analysis order."""

    return sorted(forks, key=lambda fork: (CATEGORY_RANK[fork.category], fork.name))


__all__ = ["CATEGORY_RANK", "categorize", "categorize_fork", "filter_forks", "sort_forks"]
