from __future__ import annotations

import numpy as np

from occgrid3d.grid.voxel import OccupancyVoxel, OccupancyVoxelStore


def test_merge_creates_and_updates_sorted():
    store = OccupancyVoxelStore()
    created = store.merge_deltas(np.array([2, 7]), np.array([0.5, -0.5]), -2.0, 3.5)
    assert created == 2
    created = store.merge_deltas(np.array([1, 7]), np.array([1.0, -0.25]), -2.0, 3.5)
    assert created == 1
    np.testing.assert_array_equal(store.keys, [1, 2, 7])
    np.testing.assert_allclose(store.prob_log, [1.0, 0.5, -0.75])
    assert store.colors.shape == (3, 3)


def test_merge_clamps_new_and_existing():
    store = OccupancyVoxelStore()
    store.merge_deltas(np.array([0, 1]), np.array([10.0, -10.0]), -2.0, 3.5)
    np.testing.assert_allclose(store.prob_log, [3.5, -2.0])
    store.merge_deltas(np.array([0, 1]), np.array([1.0, -1.0]), -2.0, 3.5)
    np.testing.assert_allclose(store.prob_log, [3.5, -2.0])


def test_assign_overwrites():
    store = OccupancyVoxelStore()
    store.merge_deltas(np.array([4]), np.array([0.85]), -2.0, 3.5)
    created = store.assign(np.array([3, 4]), -2.0)
    assert created == 1
    np.testing.assert_allclose(store.prob_log, [-2.0, -2.0])


def test_lookup_on_empty_and_missing_keys():
    store = OccupancyVoxelStore()
    _, found = store.lookup(np.array([0, 5]))
    assert not found.any()
    store.replace(np.array([9, 3]), np.array([1.0, 2.0]))
    pos, found = store.lookup(np.array([3, 4, 9, 10]))
    np.testing.assert_array_equal(found, [True, False, True, False])
    np.testing.assert_allclose(store.prob_log[pos[found]], [2.0, 1.0])


def test_copy_and_clear():
    store = OccupancyVoxelStore()
    store.merge_deltas(np.array([1]), np.array([0.5]), -2.0, 3.5)
    other = store.copy()
    store.clear()
    assert len(store) == 0
    assert len(other) == 1
    assert other.nbytes() > 0


def test_voxel_default_is_unknown():
    voxel = OccupancyVoxel((0, 0, 0))
    assert not voxel.is_known
    assert voxel.color == (0.0, 0.0, 1.0)
    assert OccupancyVoxel((1, 1, 1), prob_log=-0.4).is_known
    assert np.isnan(voxel.prob_log)
