"""Unit tests for tasktrack.engine.rollup — weighted math and the upward walk."""

import itertools
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from tasktrack.engine.errors import NotFoundError, PersistenceError
from tasktrack.engine.rollup import (
    ProgressRollupEngine,
    RollupResult,
    compute_weighted_progress,
    round_half_up,
)


def child(progress, weight):
    return SimpleNamespace(progress=progress, weight=weight)


class FakeStore:
    """In-memory TaskStore: id -> SimpleNamespace(id, parent_task_id, progress, weight)."""

    def __init__(self):
        self.tasks = {}
        self.calls = []

    def add(self, task_id, parent=None, progress=0, weight=0.0):
        self.tasks[task_id] = SimpleNamespace(
            id=task_id, parent_task_id=parent, progress=progress, weight=weight,
        )
        return self.tasks[task_id]

    def find_children(self, parent_id):
        self.calls.append(("find_children", parent_id))
        return [t for t in self.tasks.values() if t.parent_task_id == parent_id]

    def update_progress(self, task_id, value):
        self.calls.append(("update_progress", task_id, value))
        if task_id not in self.tasks:
            raise NotFoundError("Task not found", task_id=task_id)
        self.tasks[task_id].progress = value

    def find_by_id(self, task_id):
        self.calls.append(("find_by_id", task_id))
        return self.tasks.get(task_id)


class TestRoundHalfUp:
    def test_rounds_half_up(self):
        assert round_half_up(66.5) == 67
        assert round_half_up(2.5) == 3

    def test_rounds_down_below_half(self):
        assert round_half_up(66.49) == 66

    def test_integers_unchanged(self):
        assert round_half_up(40.0) == 40


class TestComputeWeightedProgress:
    def test_example_two_to_one(self):
        assert compute_weighted_progress([child(50, 2), child(100, 1)]) == 67

    def test_zero_weight_siblings_yield_zero(self):
        assert compute_weighted_progress([child(80, 0), child(100, 0)]) == 0

    def test_single_zero_weight_child(self):
        assert compute_weighted_progress([child(100, 0)]) == 0

    def test_empty_is_zero(self):
        assert compute_weighted_progress([]) == 0

    def test_zero_weight_child_ignored_when_others_weighted(self):
        assert compute_weighted_progress([child(100, 0), child(30, 1)]) == 30

    def test_fractional_weights(self):
        # (20*0.5 + 80*1.5) / 2.0 = 65
        assert compute_weighted_progress([child(20, 0.5), child(80, 1.5)]) == 65

    def test_order_independent(self):
        children = [child(13, 0.1), child(77, 0.2), child(91, 0.3), child(4, 0.7)]
        results = {compute_weighted_progress(p) for p in itertools.permutations(children)}
        assert len(results) == 1

    def test_all_complete_is_100(self):
        assert compute_weighted_progress([child(100, 3), child(100, 0.25)]) == 100

    def test_accepts_generator(self):
        assert compute_weighted_progress(child(p, 1) for p in (10, 20, 30)) == 20

    def test_huge_weights_do_not_overflow(self):
        assert compute_weighted_progress([child(10, 1e308), child(30, 1e308)]) == 20
        assert compute_weighted_progress([child(50, 1.5e308), child(100, 1.5e308), child(0, 1e308)]) == 56

    def test_scaled_weights_keep_half_up_boundary(self):
        # (50*3 + 100*1) / 4 = 62.5
        assert compute_weighted_progress([child(50, 3), child(100, 1)]) == 63
        assert compute_weighted_progress([child(50, 3 * 2.0 ** -900), child(100, 2.0 ** -900)]) == 63
        assert compute_weighted_progress([child(50, 3 * 2.0 ** 900), child(100, 2.0 ** 900)]) == 63

    @pytest.mark.parametrize("bad", [float("inf"), float("nan")])
    def test_non_finite_weight_rejected(self, bad):
        with pytest.raises(ValueError, match="finite"):
            compute_weighted_progress([child(10, bad), child(20, 1)])


class TestRecomputeAncestors:
    def test_none_parent_is_noop(self):
        store = MagicMock()
        result = ProgressRollupEngine(store).recompute_ancestors(None)
        assert result.updates == []
        assert result.ok
        store.find_children.assert_not_called()

    def test_parent_without_children_is_noop(self):
        store = FakeStore()
        store.add(1, progress=42)
        result = ProgressRollupEngine(store).recompute_ancestors(1)
        assert result.updates == []
        assert store.tasks[1].progress == 42
        assert not any(c[0] == "update_progress" for c in store.calls)

    def test_single_level(self):
        store = FakeStore()
        store.add(1)
        store.add(2, parent=1, progress=50, weight=2)
        store.add(3, parent=1, progress=100, weight=1)
        result = ProgressRollupEngine(store).recompute_ancestors(1, origin_task_id=2)
        assert store.tasks[1].progress == 67
        assert result.updated_ids == [1]
        assert result.origin_task_id == 2

    def test_three_level_chain_uses_new_mid_value(self):
        store = FakeStore()
        store.add(1)                                   # root
        store.add(2, parent=1, progress=0, weight=1)   # mid (stale 0)
        store.add(5, parent=1, progress=0, weight=1)   # mid sibling
        store.add(3, parent=2, progress=80, weight=1)  # leaf
        result = ProgressRollupEngine(store).recompute_ancestors(2, origin_task_id=3)

        assert [(u.task_id, u.progress) for u in result.updates] == [(2, 80), (1, 40)]
        updates = [c for c in store.calls if c[0] == "update_progress"]
        assert updates == [("update_progress", 2, 80), ("update_progress", 1, 40)]

    def test_stops_at_root(self):
        store = FakeStore()
        store.add(1)
        store.add(2, parent=1, progress=10, weight=1)
        ProgressRollupEngine(store).recompute_ancestors(1)
        assert store.calls[-1] == ("find_by_id", 1)

    def test_cycle_detected_and_reported(self):
        store = FakeStore()
        store.add(1, parent=2, weight=1)
        store.add(2, parent=1, weight=1)
        result = ProgressRollupEngine(store).recompute_ancestors(1)
        assert not result.ok
        assert "HierarchyError" in result.warnings[0]
        assert "Cycle" in result.warnings[0]
        assert result.updated_ids == [1, 2]

    def test_max_depth_bound(self):
        store = FakeStore()
        store.add(0)
        for i in range(1, 6):
            store.add(i, parent=i - 1, weight=1)
        store.add(99, parent=5, progress=100, weight=1)
        result = ProgressRollupEngine(store, max_depth=3).recompute_ancestors(5)
        assert result.updated_ids == [5, 4, 3]
        assert "max depth" in result.warnings[0]

    def test_persistence_failure_is_swallowed(self):
        store = FakeStore()
        store.add(1)
        store.add(2, parent=1, weight=1)
        store.add(3, parent=2, progress=60, weight=1)
        store.find_by_id = MagicMock(side_effect=PersistenceError("db down", operation="find_by_id"))

        result = ProgressRollupEngine(store).recompute_ancestors(2, origin_task_id=3)

        assert store.tasks[2].progress == 60
        assert store.tasks[1].progress == 0
        assert result.warnings == ["PersistenceError: db down"]

    def test_non_finite_weight_becomes_warning(self):
        store = FakeStore()
        store.add(1, progress=5)
        store.add(2, parent=1, progress=40, weight=float("inf"))
        store.add(3, parent=1, progress=10, weight=1)
        result = ProgressRollupEngine(store).recompute_ancestors(1, origin_task_id=2)
        assert result.updates == []
        assert store.tasks[1].progress == 5
        assert result.warnings == ["ValueError: Task weights must be finite"]

    def test_arithmetic_error_becomes_warning(self):
        store = FakeStore()
        store.find_children = MagicMock(side_effect=OverflowError("math range error"))
        result = ProgressRollupEngine(store).recompute_ancestors(1)
        assert result.warnings == ["OverflowError: math range error"]

    def test_dangling_parent_reference(self):
        store = FakeStore()
        store.add(2, parent=1, progress=70, weight=1)  # task 1 was deleted
        result = ProgressRollupEngine(store).recompute_ancestors(1, origin_task_id=2)
        assert result.updates == []
        assert "NotFoundError" in result.warnings[0]

    def test_result_to_dict(self):
        store = FakeStore()
        store.add(1)
        store.add(2, parent=1, progress=30, weight=1)
        d = ProgressRollupEngine(store).recompute_ancestors(1, origin_task_id=2).to_dict()
        assert d == {
            "origin_task_id": 2,
            "updates": [{"task_id": 1, "progress": 30}],
            "warnings": [],
        }


class TestRollupResult:
    def test_defaults(self):
        result = RollupResult()
        assert result.ok
        assert result.updated_ids == []
