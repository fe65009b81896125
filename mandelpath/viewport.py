"""Mapping between the pixel grid and the visible region of the complex plane."""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

BASE_WIDTH = 4.0
PRECISIONS = {
    "single": np.complex64,
    "double": np.complex128,
}


class GridIndexError(IndexError):
    """Raised when a pixel or record index falls outside the grid."""


@dataclass(frozen=True)
class Viewport:
    """Rectangle of the complex plane covered by a ``pixel_width`` x ``pixel_height`` grid."""

    center: complex
    dimensions: complex
    pixel_width: int
    pixel_height: int

    def __post_init__(self) -> None:
        if self.pixel_width < 0 or self.pixel_height < 0:
            raise ValueError(
                f"pixel dimensions must be non-negative, got {self.pixel_width}x{self.pixel_height}."
            )
        dimensions = complex(self.dimensions)
        if not (dimensions.real > 0 and dimensions.imag > 0):
            raise ValueError(f"viewport dimensions must be positive, got {dimensions}.")

    @classmethod
    def from_corners(cls, top_left: complex, bottom_right: complex, pixel_width: int, pixel_height: int) -> "Viewport":
        top_left = complex(top_left)
        bottom_right = complex(bottom_right)
        if not bottom_right.real > top_left.real:
            raise ValueError("bottom_right must lie to the right of top_left.")
        if not top_left.imag > bottom_right.imag:
            raise ValueError("top_left must lie above bottom_right.")
        dimensions = complex(bottom_right.real - top_left.real, top_left.imag - bottom_right.imag)
        center = complex(top_left.real + dimensions.real / 2.0, top_left.imag - dimensions.imag / 2.0)
        return cls(center=center, dimensions=dimensions, pixel_width=pixel_width, pixel_height=pixel_height)

    @classmethod
    def from_scale(cls, center: complex, scale: float, pixel_width: int, pixel_height: int) -> "Viewport":
        """Treat ``scale`` as a zoom level: larger values zoom in, 1.0 shows the whole set."""

        if scale <= 0:
            raise ValueError(f"scale must be positive, got {scale}.")
        return cls(
            center=complex(center),
            dimensions=_scaled_dimensions(scale, pixel_width, pixel_height),
            pixel_width=pixel_width,
            pixel_height=pixel_height,
        )

    @property
    def top_left(self) -> complex:
        return complex(
            self.center.real - self.dimensions.real / 2.0,
            self.center.imag + self.dimensions.imag / 2.0,
        )

    @property
    def bottom_right(self) -> complex:
        return complex(
            self.center.real + self.dimensions.real / 2.0,
            self.center.imag - self.dimensions.imag / 2.0,
        )

    @property
    def cell_count(self) -> int:
        return self.pixel_width * self.pixel_height

    @property
    def pixel_span(self) -> complex:
        """Size of one cell along each axis."""

        x_step = self.dimensions.real / self.pixel_width if self.pixel_width else 0.0
        y_step = self.dimensions.imag / self.pixel_height if self.pixel_height else 0.0
        return complex(x_step, y_step)

    def cell_coordinates(self) -> np.ndarray:
        """Return the mapped ``c`` of every cell as a flat row-major float64 complex array.

        Each cell samples its center, and the imaginary part decreases as the
        row index grows.
        """

        top_left = self.top_left
        x_frac = (np.arange(self.pixel_width, dtype=np.float64) + 0.5) / np.float64(max(self.pixel_width, 1))
        y_frac = (np.arange(self.pixel_height, dtype=np.float64) + 0.5) / np.float64(max(self.pixel_height, 1))
        re = np.float64(top_left.real) + x_frac * np.float64(self.dimensions.real)
        im = np.float64(top_left.imag) - y_frac * np.float64(self.dimensions.imag)
        grid = re[np.newaxis, :] + 1j * im[:, np.newaxis]
        return grid.astype(np.complex128, copy=False).reshape(-1)

    def pixel_to_complex(self, row: int, column: int) -> complex:
        self._check_cell(row, column)
        return self.screen_to_complex(column + 0.5, row + 0.5)

    def screen_to_complex(self, x: float, y: float) -> complex:
        """Map a continuous screen position (in pixels, origin top left) to the plane."""

        top_left = self.top_left
        x_frac = np.float64(x) / np.float64(self.pixel_width)
        y_frac = np.float64(y) / np.float64(self.pixel_height)
        return complex(
            float(np.float64(top_left.real) + x_frac * np.float64(self.dimensions.real)),
            float(np.float64(top_left.imag) - y_frac * np.float64(self.dimensions.imag)),
        )

    def complex_to_screen(self, z: complex) -> tuple[float, float]:
        top_left = self.top_left
        x_frac = (z.real - top_left.real) / self.dimensions.real
        y_frac = (top_left.imag - z.imag) / self.dimensions.imag
        return float(x_frac * self.pixel_width), float(y_frac * self.pixel_height)

    def pixel_index(self, row: int, column: int) -> int:
        self._check_cell(row, column)
        return row * self.pixel_width + column

    def index_to_cell(self, index: int) -> tuple[int, int]:
        if not 0 <= index < self.cell_count:
            raise GridIndexError(f"index {index} out of range for a grid of {self.cell_count} cells.")
        return divmod(index, self.pixel_width)

    def zoomed(self, factor: float) -> "Viewport":
        """Multiply the covered span by ``factor``; ``< 1`` zooms in."""

        if factor <= 0:
            raise ValueError(f"zoom factor must be positive, got {factor}.")
        dimensions = complex(
            float(np.float64(self.dimensions.real) * np.float64(factor)),
            float(np.float64(self.dimensions.imag) * np.float64(factor)),
        )
        return replace(self, dimensions=dimensions)

    def recentered(self, center: complex) -> "Viewport":
        return replace(self, center=complex(center))

    def resized(self, pixel_width: int, pixel_height: int) -> "Viewport":
        """Adopt a new resolution, re-deriving the height from the width to avoid distortion."""

        if pixel_width <= 0:
            return replace(self, pixel_width=pixel_width, pixel_height=pixel_height)
        height = np.float64(self.dimensions.real) * np.float64(pixel_height) / np.float64(pixel_width)
        if height <= 0:
            height = self.dimensions.imag
        return replace(
            self,
            dimensions=complex(self.dimensions.real, float(height)),
            pixel_width=pixel_width,
            pixel_height=pixel_height,
        )

    def _check_cell(self, row: int, column: int) -> None:
        if not (0 <= row < self.pixel_height and 0 <= column < self.pixel_width):
            raise GridIndexError(
                f"cell ({row}, {column}) out of range for a {self.pixel_width}x{self.pixel_height} grid."
            )


@dataclass(frozen=True)
class RenderParameters:
    """Immutable snapshot of everything a full grid computation depends on."""

    viewport: Viewport
    iteration_max: int
    precision: str = "single"

    def __post_init__(self) -> None:
        if self.iteration_max < 0:
            raise ValueError(f"iteration_max must be non-negative, got {self.iteration_max}.")
        if self.precision not in PRECISIONS:
            raise ValueError(
                f"Unknown precision '{self.precision}'. Valid choices: {', '.join(sorted(PRECISIONS))}."
            )

    @property
    def dtype(self) -> type:
        return PRECISIONS[self.precision]


def _scaled_dimensions(scale: float, pixel_width: int, pixel_height: int) -> complex:
    width = np.float64(BASE_WIDTH) / np.float64(scale)
    if pixel_width > 0 and pixel_height > 0:
        height = width * np.float64(pixel_height) / np.float64(pixel_width)
    else:
        height = width
    return complex(float(width), float(height))
