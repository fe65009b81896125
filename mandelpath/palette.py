"""Conversion of escape records into RGBA pixels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import PIL.Image
from matplotlib import colormaps

from .engine import EscapeRecord, MandelbrotGrid
from .viewport import Viewport

PALETTES = ("smooth", "grayscale", "colormap")
INSIDE_COLOR = (0, 0, 0, 255)


@dataclass(frozen=True)
class AxisOverlay:
    """Marker colors painted over cells lying on the real or imaginary axis."""

    epsilon: Optional[float] = None
    real_axis_color: tuple[int, int, int, int] = (255, 255, 255, 255)
    imaginary_axis_color: tuple[int, int, int, int] = (135, 206, 235, 255)

    def resolve_epsilon(self, viewport: Viewport) -> float:
        if self.epsilon is not None:
            return float(self.epsilon)
        span = viewport.pixel_span
        return 0.5 * max(span.real, span.imag)


def hsl_to_rgb(hue, saturation, luminance) -> np.ndarray:
    """Vectorized HSL to RGB with every component in ``[0, 1]``.

    Returns an array with a trailing axis of length 3.
    """

    h = np.asarray(hue, dtype=np.float64)
    s = np.asarray(saturation, dtype=np.float64)
    l = np.asarray(luminance, dtype=np.float64)
    h, s, l = np.broadcast_arrays(h, s, l)

    q = np.where(l < 0.5, l * (1.0 + s), l + s - l * s)
    p = 2.0 * l - q

    def channel(t):
        t = np.where(t < 0.0, t + 1.0, t)
        t = np.where(t > 1.0, t - 1.0, t)
        return np.select(
            [t < 1.0 / 6.0, t < 1.0 / 2.0, t < 2.0 / 3.0],
            [p + (q - p) * 6.0 * t, q, p + (q - p) * (2.0 / 3.0 - t) * 6.0],
            default=p,
        )

    rgb = np.stack((channel(h + 1.0 / 3.0), channel(h), channel(h - 1.0 / 3.0)), axis=-1)
    gray = np.stack((l, l, l), axis=-1)
    return np.where((s == 0.0)[..., np.newaxis], gray, rgb)


def _to_uint8(values: np.ndarray) -> np.ndarray:
    # truncate like a float -> byte cast
    scaled = np.nan_to_num(np.asarray(values, dtype=np.float64) * 255.0, nan=0.0)
    return np.floor(np.clip(scaled, 0.0, 255.0)).astype(np.uint8)


def smoothed_iterations(escape_times: np.ndarray, last_values: np.ndarray) -> np.ndarray:
    """Continuous escape count ``n + 1 - log2(log2(|z_last|))`` for escaped cells.

    Every ``last_values`` entry must have magnitude above the escape radius.
    """

    magnitude = np.abs(np.asarray(last_values).astype(np.complex128))
    return np.asarray(escape_times, dtype=np.float64) + 1.0 - np.log2(np.log2(magnitude))


def _smooth_colors(escape_times: np.ndarray, last_values: np.ndarray, iteration_max: int) -> np.ndarray:
    normalized = smoothed_iterations(escape_times, last_values) / np.float64(iteration_max)
    hue = np.mod(normalized, 1.0) ** 0.7
    luminance = np.clip(normalized, 0.0, None) ** 0.3 * 0.5
    rgb = hsl_to_rgb(hue, 1.0, luminance)
    rgba = np.empty(rgb.shape[:-1] + (4,), dtype=np.uint8)
    rgba[..., :3] = _to_uint8(rgb)
    rgba[..., 3] = 255
    return rgba


def _grayscale_colors(escape_times: np.ndarray, iteration_max: int) -> np.ndarray:
    level = _to_uint8((np.asarray(escape_times, dtype=np.float64) + 1.0) / np.float64(iteration_max))
    rgba = np.empty(level.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = level[..., np.newaxis]
    rgba[..., 3] = 255
    return rgba


def _colormap_colors(
    escape_times: np.ndarray,
    last_values: np.ndarray,
    iteration_max: int,
    colormap: str,
) -> np.ndarray:
    cmap = colormaps[colormap]
    normalized = smoothed_iterations(escape_times, last_values) / np.float64(iteration_max)
    rgba = _to_uint8(cmap(np.clip(normalized, 0.0, 1.0)))
    rgba[..., 3] = 255
    return rgba


def _check_mode(mode: str) -> None:
    if mode not in PALETTES:
        raise ValueError(f"Unknown palette '{mode}'. Valid choices: {', '.join(PALETTES)}.")


def escape_color(
    record: EscapeRecord,
    iteration_max: int,
    mode: str = "smooth",
    *,
    colormap: str = "twilight_shifted",
    inside_color: tuple[int, int, int, int] = INSIDE_COLOR,
) -> tuple[int, int, int, int]:
    """Color a single escape record."""

    _check_mode(mode)
    if record.escape_time is None:
        return tuple(inside_color)

    escape_times = np.array([record.escape_time])
    if mode == "grayscale":
        rgba = _grayscale_colors(escape_times, iteration_max)
    elif mode == "colormap":
        rgba = _colormap_colors(escape_times, np.array([record.last]), iteration_max, colormap)
    else:
        rgba = _smooth_colors(escape_times, np.array([record.last]), iteration_max)
    return tuple(int(channel) for channel in rgba[0])


def apply_axis_overlay(
    pixels: np.ndarray,
    coordinates: np.ndarray,
    epsilon: float,
    *,
    real_axis_color: tuple[int, int, int, int] = AxisOverlay.real_axis_color,
    imaginary_axis_color: tuple[int, int, int, int] = AxisOverlay.imaginary_axis_color,
) -> np.ndarray:
    """Return a copy of ``pixels`` with cells near either axis recolored."""

    coordinates = np.asarray(coordinates)
    out = np.array(pixels, dtype=np.uint8, copy=True)
    out[np.abs(coordinates.imag) <= epsilon] = real_axis_color
    out[np.abs(coordinates.real) <= epsilon] = imaginary_axis_color
    return out


def build_pixel_buffer(
    grid: MandelbrotGrid,
    mode: str = "smooth",
    *,
    colormap: str = "twilight_shifted",
    inside_color: tuple[int, int, int, int] = INSIDE_COLOR,
    axes: Optional[AxisOverlay] = None,
    viewport: Optional[Viewport] = None,
) -> np.ndarray:
    """Color every cell of ``grid`` into an ``(N, 4)`` uint8 RGBA buffer.

    ``viewport`` is only needed to derive a default epsilon for ``axes``.
    """

    _check_mode(mode)
    pixels = np.empty((len(grid), 4), dtype=np.uint8)
    pixels[:] = inside_color

    escaped = grid.escaped
    if np.any(escaped):
        escape_times = grid.escape_times[escaped]
        if mode == "grayscale":
            pixels[escaped] = _grayscale_colors(escape_times, grid.iteration_max)
        else:
            last_values = grid.last_values[escaped]
            if mode == "colormap":
                pixels[escaped] = _colormap_colors(escape_times, last_values, grid.iteration_max, colormap)
            else:
                pixels[escaped] = _smooth_colors(escape_times, last_values, grid.iteration_max)

    if axes is not None:
        if axes.epsilon is None and viewport is None:
            raise ValueError("an axis overlay without epsilon needs the viewport.")
        pixels = apply_axis_overlay(
            pixels,
            grid.coordinates,
            axes.resolve_epsilon(viewport),
            real_axis_color=axes.real_axis_color,
            imaginary_axis_color=axes.imaginary_axis_color,
        )
    return pixels


def pixel_buffer_to_image(pixels: np.ndarray, pixel_width: int, pixel_height: int) -> PIL.Image.Image:
    frame = np.ascontiguousarray(pixels, dtype=np.uint8).reshape(pixel_height, pixel_width, 4)
    return PIL.Image.fromarray(frame)
