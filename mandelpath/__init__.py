"""Public API for Mandelbrot escape-time and escape-path computation."""

from .engine import (
    EscapeRecord,
    MandelbrotGrid,
    calculate_escape_times_and_paths,
    compute_grid,
)
from .overlay import draw_orbit, label_orbit
from .palette import (
    AxisOverlay,
    apply_axis_overlay,
    build_pixel_buffer,
    escape_color,
    hsl_to_rgb,
    pixel_buffer_to_image,
    smoothed_iterations,
)
from .viewport import GridIndexError, RenderParameters, Viewport

__all__ = [
    "AxisOverlay",
    "EscapeRecord",
    "GridIndexError",
    "MandelbrotGrid",
    "RenderParameters",
    "Viewport",
    "apply_axis_overlay",
    "build_pixel_buffer",
    "calculate_escape_times_and_paths",
    "compute_grid",
    "draw_orbit",
    "escape_color",
    "hsl_to_rgb",
    "label_orbit",
    "pixel_buffer_to_image",
    "smoothed_iterations",
]
