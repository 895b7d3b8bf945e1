from __future__ import annotations

import numpy as np
import pytest

from occgrid3d.grid.errors import ConfigurationError
from occgrid3d.grid.occupancy_grid import OccupancyGrid, reduce_by_key
from occgrid3d.grid.voxel import OccupancyVoxel

HIT = 0.85
MISS = -0.4


def _prob(grid: OccupancyGrid, index) -> float:
    found, voxel = grid.get_voxel(grid.index_to_world(index))
    assert found, index
    return voxel.prob_log


# ---------------------------------------------------------------------------
# Construction and tunables
# ---------------------------------------------------------------------------

def test_defaults():
    grid = OccupancyGrid(0.1)
    assert grid.resolution == 512
    np.testing.assert_allclose(grid.origin, [0.0, 0.0, 0.0])
    assert grid.clamping_thres_min == -2.0
    assert grid.clamping_thres_max == 3.5
    assert grid.prob_hit_log == HIT
    assert grid.prob_miss_log == MISS
    assert grid.occ_prob_thres_log == 0.0
    assert grid.visualize_free_area is True
    assert not grid.has_voxels()
    assert grid.has_colors()


@pytest.mark.parametrize("voxel_size, resolution", [(0.0, 4), (-0.5, 4), (1.0, 0), (1.0, -1)])
def test_invalid_geometry_fails_at_construction(voxel_size, resolution):
    with pytest.raises(ConfigurationError):
        OccupancyGrid(voxel_size, resolution)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"clamping_thres_min": 1.0, "clamping_thres_max": 1.0},
        {"prob_hit_log": 0.0},
        {"prob_miss_log": 0.1},
        {"prob_hit_log": 4.0},
        {"prob_miss_log": -2.5},
        {"clamping_thres_max": 0.5, "occ_prob_thres_log": 0.0},
        {"occ_prob_thres_log": 3.5},
        {"occ_prob_thres_log": -2.5},
        {"chunk_size": 0},
    ],
)
def test_invalid_model_fails_at_construction(kwargs):
    with pytest.raises(ConfigurationError):
        OccupancyGrid(1.0, 4, **kwargs)


def test_tunable_assignment_is_validated(small_grid):
    small_grid.prob_hit_log = 1.2
    assert small_grid.prob_hit_log == 1.2
    with pytest.raises(ConfigurationError):
        small_grid.prob_miss_log = 0.5
    assert small_grid.prob_miss_log == MISS
    with pytest.raises(ConfigurationError):
        small_grid.clamping_thres_max = -3.0
    with pytest.raises(ConfigurationError):
        small_grid.clamping_thres_max = 1.0
    assert small_grid.clamping_thres_max == 3.5


# ---------------------------------------------------------------------------
# Insert
# ---------------------------------------------------------------------------

def test_single_ray_scenario(small_grid):
    summary = small_grid.insert(np.array([[3.5, 0.0, 0.0]]), (0.0, 0.0, 0.0))

    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(HIT)
    for i in range(3):
        assert _prob(small_grid, (i, 0, 0)) == pytest.approx(MISS)
    assert small_grid.count_known_voxels() == 4
    assert small_grid.is_unknown((0.5, 1.5, 0.5))
    assert small_grid.is_occupied((3.5, 0.0, 0.0))
    assert not small_grid.is_occupied((0.5, 0.0, 0.0))
    assert not small_grid.is_unknown((0.5, 0.0, 0.0))

    assert summary.num_points == 1
    assert summary.num_rays == 1
    assert summary.num_events == 4
    assert summary.num_touched == 4
    assert summary.num_created == 4


def test_repeated_inserts_reinforce(small_grid):
    pts = np.array([[3.5, 0.0, 0.0]])
    small_grid.insert(pts, (0.0, 0.0, 0.0))
    summary = small_grid.insert(pts, (0.0, 0.0, 0.0))
    assert summary.num_created == 0
    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(2 * HIT)
    assert _prob(small_grid, (1, 0, 0)) == pytest.approx(2 * MISS)


def test_rays_sharing_voxels_in_one_call_all_count(small_grid):
    pts = np.array([[3.5, 0.5, 0.5], [3.6, 0.5, 0.5]])
    summary = small_grid.insert(pts, (0.5, 0.5, 0.5))
    assert summary.num_events == 8
    assert summary.num_touched == 4
    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(2 * HIT)
    for i in range(3):
        assert _prob(small_grid, (i, 0, 0)) == pytest.approx(2 * MISS)


def test_hit_and_miss_on_same_voxel_are_summed(small_grid):
    pts = np.array([[1.5, 0.5, 0.5], [3.5, 0.5, 0.5]])
    small_grid.insert(pts, (0.5, 0.5, 0.5))
    assert _prob(small_grid, (0, 0, 0)) == pytest.approx(2 * MISS)
    assert _prob(small_grid, (1, 0, 0)) == pytest.approx(HIT + MISS)
    assert _prob(small_grid, (2, 0, 0)) == pytest.approx(MISS)
    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(HIT)


def test_clamping_bounds_hold(small_grid):
    pts = np.array([[3.5, 0.5, 0.5]] * 5)
    for _ in range(10):
        small_grid.insert(pts, (0.5, 0.5, 0.5))
    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(3.5)
    assert _prob(small_grid, (0, 0, 0)) == pytest.approx(-2.0)
    assert np.nanmax(small_grid.store.prob_log) <= 3.5
    assert np.nanmin(small_grid.store.prob_log) >= -2.0


def test_max_range_discards_whole_ray(small_grid):
    pts = np.array([[3.5, 0.5, 0.5]])
    summary = small_grid.insert(pts, (0.5, 0.5, 0.5), max_range=2.0)
    assert summary.num_rays == 0
    assert not small_grid.has_voxels()

    small_grid.insert(pts, (0.5, 0.5, 0.5), max_range=5.0)
    assert small_grid.count_known_voxels() == 4


def test_visualize_free_area_off_records_hits_only(small_grid):
    small_grid.visualize_free_area = False
    small_grid.insert(np.array([[3.5, 3.5, 3.5], [0.5, 3.5, 0.5]]), (0.5, 0.5, 0.5))
    assert small_grid.count_known_voxels() == 2
    assert small_grid.count_free_voxels() == 0
    np.testing.assert_array_equal(
        small_grid.extract_occupied_voxel_indices(), [[0, 3, 0], [3, 3, 3]]
    )


def test_empty_batch_is_noop(small_grid):
    summary = small_grid.insert(np.empty((0, 3)), (0.5, 0.5, 0.5))
    assert summary.num_points == 0
    assert summary.num_touched == 0
    assert not small_grid.has_voxels()


def test_out_of_bounds_point_only_clears_space(small_grid):
    small_grid.insert(np.array([[10.0, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    assert small_grid.count_occupied_voxels() == 0
    assert small_grid.count_free_voxels() == 4


def test_chunking_does_not_change_result(rng):
    pts = rng.uniform(-1.0, 9.0, size=(300, 3))
    viewpoint = (4.0, 4.0, 4.0)
    a = OccupancyGrid(1.0, 8)
    b = OccupancyGrid(1.0, 8, chunk_size=7)
    a.insert(pts, viewpoint)
    b.insert(pts, viewpoint)
    np.testing.assert_array_equal(a.store.keys, b.store.keys)
    np.testing.assert_allclose(a.store.prob_log, b.store.prob_log, rtol=0, atol=1e-6)


def test_nan_prior_counts_as_zero(small_grid):
    small_grid.store.replace(np.array([3]), np.array([np.nan]))
    assert small_grid.is_unknown((3.5, 0.5, 0.5))
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (3.5, 0.5, 0.5))
    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(HIT)


# ---------------------------------------------------------------------------
# AddVoxel(s)
# ---------------------------------------------------------------------------

def test_add_voxel_occupied(small_grid):
    small_grid.add_voxel((1, 2, 3), occupied=True)
    assert small_grid.is_occupied(small_grid.index_to_world((1, 2, 3)))
    assert _prob(small_grid, (1, 2, 3)) == pytest.approx(3.5)


def test_add_voxels_free_overwrites(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    summary = small_grid.add_voxels(np.array([[3, 0, 0], [0, 3, 0]]), occupied=False)
    assert summary.num_created == 1
    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(-2.0)
    assert small_grid.count_occupied_voxels() == 0


def test_add_voxels_ignores_out_of_bounds(small_grid):
    summary = small_grid.add_voxels(np.array([[4, 0, 0], [-1, 0, 0], [0, 0, 9]]), occupied=True)
    assert summary.num_touched == 0
    assert not small_grid.has_voxels()


# ---------------------------------------------------------------------------
# Classification and extraction
# ---------------------------------------------------------------------------

def test_known_equals_free_plus_occupied(rng):
    grid = OccupancyGrid(0.5, 16)
    for _ in range(3):
        grid.insert(rng.uniform(0.0, 8.0, size=(100, 3)), rng.uniform(2.0, 6.0, size=3))
    assert grid.count_known_voxels() > 0
    assert grid.count_occupied_voxels() > 0
    assert grid.count_known_voxels() == grid.count_free_voxels() + grid.count_occupied_voxels()


def test_extraction_is_in_ascending_linear_order(rng):
    grid = OccupancyGrid(0.5, 16)
    grid.insert(rng.uniform(0.0, 8.0, size=(200, 3)), (4.0, 4.0, 4.0))
    for indices in (
        grid.extract_known_voxel_indices(),
        grid.extract_free_voxel_indices(),
        grid.extract_occupied_voxel_indices(),
    ):
        keys = grid.linearize(indices)
        assert np.all(np.diff(keys) > 0)


def test_extract_voxels_returns_value_objects(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    occupied = small_grid.extract_occupied_voxels()
    assert len(occupied) == 1
    assert isinstance(occupied[0], OccupancyVoxel)
    assert occupied[0].grid_index == (3, 0, 0)
    assert occupied[0].color == (0.0, 0.0, 1.0)
    free = small_grid.extract_free_voxels()
    assert [v.grid_index for v in free] == [(0, 0, 0), (1, 0, 0), (2, 0, 0)]
    assert len(small_grid.extract_known_voxels()) == 4


def test_threshold_change_reclassifies(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    small_grid.occ_prob_thres_log = 1.0
    assert small_grid.count_occupied_voxels() == 0
    assert small_grid.count_free_voxels() == 4


def test_point_queries_out_of_bounds(small_grid):
    assert small_grid.get_voxel_index((5.0, 0.0, 0.0)) == -1
    assert small_grid.get_voxel((5.0, 0.0, 0.0)) == (False, None)
    assert small_grid.is_unknown((5.0, 0.0, 0.0))
    assert not small_grid.is_occupied((5.0, 0.0, 0.0))
    assert small_grid.get_voxel_index((1.5, 2.5, 3.5)) == 1 + 2 * 4 + 3 * 16


def test_occupancy_probability(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    indices, prob = small_grid.occupancy_probability()
    assert indices.shape == (4, 3)
    assert prob[-1] == pytest.approx(1.0 / (1.0 + np.exp(-HIT)), rel=1e-6)
    assert np.all(prob[:-1] < 0.5)


# ---------------------------------------------------------------------------
# Reconstruction
# ---------------------------------------------------------------------------

def test_reconstruct_coarser_merges_collisions(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    summary = small_grid.reconstruct_voxels(2.0, 2)
    assert small_grid.voxel_size == 2.0
    assert small_grid.resolution == 2
    assert summary.num_before == 4
    assert summary.num_after == 2
    assert summary.num_merged == 2
    assert summary.num_dropped == 0
    assert _prob(small_grid, (0, 0, 0)) == pytest.approx(2 * MISS)
    assert _prob(small_grid, (1, 0, 0)) == pytest.approx(HIT + MISS)


def test_reconstruct_smaller_resolution_drops_voxels(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    summary = small_grid.reconstruct_voxels(1.0, 2)
    assert summary.num_dropped == 2
    np.testing.assert_array_equal(small_grid.extract_known_voxel_indices(), [[0, 0, 0], [1, 0, 0]])


def test_reconstruct_never_increases_known_count(rng):
    grid = OccupancyGrid(0.5, 16)
    grid.insert(rng.uniform(0.0, 8.0, size=(300, 3)), (4.0, 4.0, 4.0))
    before = grid.count_known_voxels()
    grid.reconstruct_voxels(0.5, 10)
    assert grid.count_known_voxels() <= before
    grid.reconstruct_voxels(1.5, 3)
    assert grid.count_known_voxels() <= before


def test_reconstruct_merge_is_clamped(small_grid):
    small_grid.add_voxels(np.array([[0, 0, 0], [1, 0, 0]]), occupied=True)
    small_grid.reconstruct_voxels(2.0, 2)
    assert _prob(small_grid, (0, 0, 0)) == pytest.approx(3.5)


def test_reconstruct_merge_skips_nan_and_keeps_first_color(small_grid):
    colors = np.array([[0.25, 0.0, 0.0], [0.0, 0.5, 0.0], [0.0, 0.0, 0.75], [1.0, 1.0, 1.0]])
    small_grid.store.replace(np.arange(4), np.array([np.nan, np.nan, np.nan, 0.5]), colors)
    small_grid.reconstruct_voxels(2.0, 2)

    found, first = small_grid.get_voxel((0.5, 0.5, 0.5))
    assert found
    assert np.isnan(first.prob_log)
    assert first.color == pytest.approx((0.25, 0.0, 0.0))

    found, second = small_grid.get_voxel((2.5, 0.5, 0.5))
    assert found
    assert second.prob_log == pytest.approx(0.5)
    assert second.color == pytest.approx((0.0, 0.0, 0.75))
    assert small_grid.count_known_voxels() == 1


def test_reconstruct_invalid_raises(small_grid):
    with pytest.raises(ConfigurationError):
        small_grid.reconstruct_voxels(0.0, 4)
    assert small_grid.voxel_size == 1.0


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def test_copy_is_independent(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    other = small_grid.copy()
    other.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    assert _prob(small_grid, (3, 0, 0)) == pytest.approx(HIT)
    assert _prob(other, (3, 0, 0)) == pytest.approx(2 * HIT)


def test_clear_releases_store(small_grid):
    small_grid.insert(np.array([[3.5, 0.5, 0.5]]), (0.5, 0.5, 0.5))
    small_grid.clear()
    assert len(small_grid) == 0
    assert small_grid.resolution == 4


def test_reduce_by_key_sums_per_key():
    keys = np.array([5, 1, 5, 3, 1])
    ids = np.array([0, 1, 2, 3, 4])
    deltas = np.array([1.0, 2.0, 3.0, 4.0, 0.5])
    k, d = reduce_by_key(keys, ids, deltas)
    np.testing.assert_array_equal(k, [1, 3, 5])
    np.testing.assert_allclose(d, [2.5, 4.0, 4.0])
