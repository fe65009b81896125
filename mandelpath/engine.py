"""Escape-time computation for a full grid of Mandelbrot samples."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np
import tensorflow as tf

from .viewport import GridIndexError, RenderParameters, Viewport

HORIZON = 4.0
DEFAULT_CHUNK_SIZE = 16384
DEVICE = "/CPU:0"


@dataclass(frozen=True)
class EscapeRecord:
    """Escape behaviour of a single cell."""

    escape_time: Optional[int]
    path: np.ndarray

    @property
    def escaped(self) -> bool:
        return self.escape_time is not None

    @property
    def last(self) -> complex:
        return complex(self.path[-1])

    @property
    def c(self) -> Optional[complex]:
        # z_1 = 0^2 + c
        if len(self.path) < 2:
            return None
        return complex(self.path[1])


@dataclass(frozen=True, eq=False)
class MandelbrotGrid:
    """Row-major arena holding one escape record per cell.

    ``escape_times`` uses ``-1`` for bounded cells. ``orbits`` has one row per
    cell; entries past ``path_lengths`` are NaN.
    """

    pixel_width: int
    pixel_height: int
    iteration_max: int
    coordinates: np.ndarray
    escape_times: np.ndarray
    path_lengths: np.ndarray
    orbits: np.ndarray

    def __len__(self) -> int:
        return self.pixel_width * self.pixel_height

    def __getitem__(self, index: int) -> EscapeRecord:
        if not 0 <= index < len(self):
            raise GridIndexError(f"record index {index} out of range for a grid of {len(self)} cells.")
        escape_time = int(self.escape_times[index])
        path = self.orbits[index, : int(self.path_lengths[index])]
        return EscapeRecord(escape_time=escape_time if escape_time >= 0 else None, path=path)

    def __iter__(self) -> Iterator[EscapeRecord]:
        for index in range(len(self)):
            yield self[index]

    def record_at(self, row: int, column: int) -> EscapeRecord:
        if not (0 <= row < self.pixel_height and 0 <= column < self.pixel_width):
            raise GridIndexError(
                f"cell ({row}, {column}) out of range for a {self.pixel_width}x{self.pixel_height} grid."
            )
        return self[row * self.pixel_width + column]

    @property
    def escaped(self) -> np.ndarray:
        return self.escape_times >= 0

    @property
    def last_values(self) -> np.ndarray:
        if len(self) == 0:
            return np.zeros(0, dtype=self.orbits.dtype)
        return self.orbits[np.arange(len(self)), self.path_lengths - 1]


@tf.function(reduce_retracing=True)
def _escape_run(cs: tf.Tensor, iteration_max: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor]:
    """Iterate ``z = z*z + c`` for a vector of cells, recording every iterate."""

    zs = tf.zeros_like(cs)
    escape = tf.fill(tf.shape(cs), tf.constant(-1, dtype=tf.int32))
    active = tf.ones(tf.shape(cs), dtype=tf.bool)
    history = tf.TensorArray(cs.dtype, size=0, dynamic_size=True, clear_after_read=False)
    history = history.write(0, zs)
    horizon = tf.cast(HORIZON, tf.math.real(cs).dtype)

    def cond(i, zs, escape, active, history):
        return tf.logical_and(tf.less(i, iteration_max), tf.reduce_any(active))

    def body(i, zs, escape, active, history):
        zs = tf.where(active, zs * zs + cs, zs)
        history = history.write(i + 1, zs)
        re = tf.math.real(zs)
        im = tf.math.imag(zs)
        escaped_now = tf.logical_and(active, re * re + im * im > horizon)
        escape = tf.where(escaped_now, i, escape)
        active = tf.logical_and(active, tf.logical_not(escaped_now))
        return i + 1, zs, escape, active, history

    i = tf.constant(0, dtype=tf.int32)
    _, _, escape, _, history = tf.while_loop(cond, body, (i, zs, escape, active, history))
    return escape, tf.transpose(history.stack())


def _chunk_bounds(total: int, chunk_size: int) -> list[tuple[int, int]]:
    return [(start, min(start + chunk_size, total)) for start in range(0, total, chunk_size)]


def _allocate(params: RenderParameters) -> MandelbrotGrid:
    viewport = params.viewport
    total = viewport.cell_count
    dtype = params.dtype
    orbits = np.full((total, params.iteration_max + 1), np.nan, dtype=dtype)
    if total:
        orbits[:, 0] = 0
    return MandelbrotGrid(
        pixel_width=viewport.pixel_width,
        pixel_height=viewport.pixel_height,
        iteration_max=params.iteration_max,
        coordinates=viewport.cell_coordinates().astype(dtype),
        escape_times=np.full(total, -1, dtype=np.int64),
        path_lengths=np.full(total, params.iteration_max + 1, dtype=np.int64),
        orbits=orbits,
    )


def _fill_chunk(grid: MandelbrotGrid, start: int, stop: int, iteration_max: int) -> None:
    with tf.device(DEVICE):
        cs = tf.convert_to_tensor(grid.coordinates[start:stop])
        escape, history = _escape_run(cs, tf.constant(iteration_max, dtype=tf.int32))

    escape = escape.numpy().astype(np.int64)
    history = history.numpy()
    steps = history.shape[1]
    grid.escape_times[start:stop] = escape
    grid.path_lengths[start:stop] = np.where(escape >= 0, escape + 2, iteration_max + 1)
    grid.orbits[start:stop, :steps] = history

    # frozen cells repeat their escaping value in the history; blank them out
    columns = np.arange(grid.orbits.shape[1])
    padding = columns[np.newaxis, :] >= grid.path_lengths[start:stop, np.newaxis]
    grid.orbits[start:stop][padding] = np.nan


def compute_grid(
    params: RenderParameters,
    *,
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> MandelbrotGrid:
    """Compute the escape record of every cell of ``params.viewport``.

    Cells are split into contiguous ranges of ``chunk_size`` and processed by a
    pool of ``workers`` threads, each writing only its own slice of the output.
    Chunking depends only on the grid size, so identical parameters always give
    identical grids.
    """

    if workers is not None and workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}.")
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be at least 1, got {chunk_size}.")

    grid = _allocate(params)
    if len(grid) == 0 or params.iteration_max == 0:
        return grid

    bounds = _chunk_bounds(len(grid), chunk_size)
    max_workers = min(workers or os.cpu_count() or 1, len(bounds))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(_fill_chunk, grid, start, stop, params.iteration_max)
            for start, stop in bounds
        ]
        for future in futures:
            future.result()
    return grid


def calculate_escape_times_and_paths(
    pixel_width: int,
    pixel_height: int,
    center: complex,
    dimensions: complex,
    iteration_max: int,
    *,
    precision: str = "single",
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> MandelbrotGrid:
    """Functional form of :func:`compute_grid` for a center/dimensions viewport."""

    viewport = Viewport(center=center, dimensions=dimensions, pixel_width=pixel_width, pixel_height=pixel_height)
    params = RenderParameters(viewport=viewport, iteration_max=iteration_max, precision=precision)
    return compute_grid(params, workers=workers, chunk_size=chunk_size)
