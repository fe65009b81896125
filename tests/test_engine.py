import pytest
import numpy as np

from mandelpath import (
    GridIndexError,
    RenderParameters,
    Viewport,
    calculate_escape_times_and_paths,
    compute_grid,
)


def reference_escape(c, iteration_max):
    """Plain double precision escape time, ``None`` for bounded orbits."""

    z = 0j
    for n in range(iteration_max):
        z = z * z + c
        if z.real * z.real + z.imag * z.imag > 4.0:
            return n
    return None


def squared_norm(z):
    return z.real * z.real + z.imag * z.imag


@pytest.fixture(scope="module")
def overview_grid():
    viewport = Viewport(center=complex(-0.5, 0.0), dimensions=complex(3.0, 2.5), pixel_width=24, pixel_height=20)
    return compute_grid(RenderParameters(viewport, 60), chunk_size=97)


def test_grid_cardinality(overview_grid):
    assert len(overview_grid) == 24 * 20
    assert overview_grid.orbits.shape == (480, 61)
    assert len(list(overview_grid)) == 480


def test_every_path_starts_at_origin(overview_grid):
    for record in overview_grid:
        assert len(record.path) >= 1
        assert record.path[0] == 0


def test_escaped_paths_cross_the_radius_exactly_once(overview_grid):
    escaped = [record for record in overview_grid if record.escaped]
    assert escaped
    for record in escaped:
        n = record.escape_time
        assert len(record.path) == n + 2
        assert squared_norm(record.path[n + 1]) > 4.0
        for k in range(n + 1):
            assert squared_norm(record.path[k]) <= 4.0


def test_bounded_paths_have_full_length(overview_grid):
    bounded = [record for record in overview_grid if not record.escaped]
    assert bounded
    for record in bounded:
        assert len(record.path) == overview_grid.iteration_max + 1
        assert squared_norm(record.path[overview_grid.iteration_max]) <= 4.0
        assert not np.any(np.isnan(record.path))


def test_path_follows_the_recurrence(overview_grid):
    record = overview_grid.record_at(3, 2)
    c = overview_grid.coordinates[3 * 24 + 2]
    assert record.c == pytest.approx(complex(c))
    for k in range(len(record.path) - 1):
        expected = record.path[k] * record.path[k] + c
        assert record.path[k + 1] == pytest.approx(complex(expected), rel=1e-5, abs=1e-5)


def test_padding_past_the_path_is_nan(overview_grid):
    index = int(np.argmax(overview_grid.escaped))
    length = int(overview_grid.path_lengths[index])
    assert np.all(np.isnan(overview_grid.orbits[index, length:]))


def test_escape_times_match_double_precision_reference():
    viewport = Viewport(center=complex(-0.5, 0.0), dimensions=complex(3.0, 2.5), pixel_width=16, pixel_height=12)
    grid = compute_grid(RenderParameters(viewport, 25, precision="double"))
    coords = viewport.cell_coordinates()
    for index in range(len(grid)):
        assert grid[index].escape_time == reference_escape(complex(coords[index]), 25)


def test_example_scenario():
    viewport = Viewport.from_corners(complex(-2, 1), complex(1, -1), 2, 2)
    grid = compute_grid(RenderParameters(viewport, 50))

    assert len(grid) == 4
    first = grid.record_at(0, 0)
    assert first.c == pytest.approx(complex(-1.25, 0.5))
    assert first.escape_time == reference_escape(complex(-1.25, 0.5), 50)
    assert first.escape_time == 3
    # conjugate cell below it escapes at the same step
    assert grid.record_at(1, 0).escape_time == 3


def test_origin_is_bounded():
    viewport = Viewport(center=0j, dimensions=complex(3, 3), pixel_width=3, pixel_height=3)
    for iteration_max in (1, 2, 50):
        grid = compute_grid(RenderParameters(viewport, iteration_max))
        record = grid.record_at(1, 1)
        assert grid.coordinates[4] == 0
        assert record.escape_time is None
        assert np.all(record.path == 0)


def test_far_point_escapes_immediately():
    viewport = Viewport(center=complex(3, 0), dimensions=complex(1, 1), pixel_width=1, pixel_height=1)
    record = compute_grid(RenderParameters(viewport, 10))[0]
    assert record.escape_time == 0
    assert list(record.path) == [0, 3]


def test_zero_iterations_leave_every_cell_bounded():
    viewport = Viewport(center=complex(3, 0), dimensions=complex(4, 4), pixel_width=3, pixel_height=2)
    grid = compute_grid(RenderParameters(viewport, 0))
    assert len(grid) == 6
    for record in grid:
        assert record.escape_time is None
        assert list(record.path) == [0]


@pytest.mark.parametrize("width, height", [(0, 0), (0, 7), (5, 0)])
def test_zero_resolution_gives_empty_grid(width, height):
    viewport = Viewport(center=0j, dimensions=complex(2, 2), pixel_width=width, pixel_height=height)
    grid = compute_grid(RenderParameters(viewport, 20))
    assert len(grid) == 0
    assert list(grid) == []
    assert grid.last_values.shape == (0,)


def test_repeated_runs_are_identical():
    viewport = Viewport(center=complex(-0.75, 0.1), dimensions=complex(0.5, 0.5), pixel_width=30, pixel_height=30)
    params = RenderParameters(viewport, 80)
    first = compute_grid(params, workers=4, chunk_size=64)
    second = compute_grid(params, workers=1, chunk_size=64)

    np.testing.assert_array_equal(first.escape_times, second.escape_times)
    np.testing.assert_array_equal(first.path_lengths, second.path_lengths)
    np.testing.assert_array_equal(first.orbits, second.orbits)


def test_out_of_range_access_fails_loudly(overview_grid):
    with pytest.raises(GridIndexError):
        overview_grid[len(overview_grid)]
    with pytest.raises(GridIndexError):
        overview_grid[-1]
    with pytest.raises(IndexError):
        overview_grid.record_at(20, 0)


def test_last_values_match_records(overview_grid):
    last = overview_grid.last_values
    for index in (0, 17, 240, 479):
        assert last[index] == overview_grid[index].last


def test_invalid_pool_settings():
    viewport = Viewport(center=0j, dimensions=complex(2, 2), pixel_width=2, pixel_height=2)
    with pytest.raises(ValueError):
        compute_grid(RenderParameters(viewport, 5), workers=0)
    with pytest.raises(ValueError):
        compute_grid(RenderParameters(viewport, 5), chunk_size=0)


def test_functional_form():
    grid = calculate_escape_times_and_paths(4, 3, complex(-0.4, 0), complex(4, 3), 25, precision="double")
    assert len(grid) == 12
    assert grid.orbits.dtype == np.complex128
    assert grid.iteration_max == 25
