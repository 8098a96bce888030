from __future__ import annotations

import itertools

from gh_wtfork.categorize import categorize, filter_forks, sort_forks
from gh_wtfork.models import Category, Fork


def _fork(name: str, category: Category) -> Fork:
    fork = Fork(name=name, full_name=f"me/{name}", url="", default_branch="main")
    fork.category = category
    return fork


def test_categorize_covers_every_combination():
    for ahead, branches, has_open_pr in itertools.product([0, 1, 7], [0, 1, 3], [False, True]):
        category = categorize(ahead, branches, has_open_pr)
        if ahead > 0:
            assert category is Category.MAINTAINED
        elif branches > 0 or has_open_pr:
            assert category is Category.CONTRIBUTION
        else:
            assert category is Category.UNTOUCHED


def test_sort_orders_by_category_then_name():
    forks = [
        _fork("zzz", Category.CONTRIBUTION),
        _fork("bbb", Category.MAINTAINED),
        _fork("ccc", Category.UNTOUCHED),
        _fork("aaa", Category.MAINTAINED),
    ]

    assert [fork.name for fork in sort_forks(forks)] == ["aaa", "bbb", "zzz", "ccc"]


def test_sort_is_independent_of_input_order():
    forks = [_fork("bbb", Category.MAINTAINED), _fork("aaa", Category.MAINTAINED), _fork("zzz", Category.CONTRIBUTION)]

    for permutation in itertools.permutations(forks):
        assert [fork.name for fork in sort_forks(permutation)] == ["aaa", "bbb", "zzz"]


def test_filter_hides_untouched_unless_show_all():
    forks = [_fork("kept", Category.CONTRIBUTION), _fork("idle", Category.UNTOUCHED)]

    assert [fork.name for fork in filter_forks(forks)] == ["kept"]
    assert [fork.name for fork in filter_forks(forks, show_all=True)] == ["kept", "idle"]
