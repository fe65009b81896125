import os
import sys
import time
import warnings
from dataclasses import dataclass
from pathlib import Path

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

if _suppress_messages:
    warnings.filterwarnings(
        "ignore",
        message=r"Protobuf gencode version .* is exactly one major version older than the runtime version .*",
        category=UserWarning,
        module="google.protobuf",
    )

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import tensorflow as tf
import numpy as np

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")

import PIL.Image
import imageio

from mandelpath import (
    AxisOverlay,
    GridIndexError,
    RenderParameters,
    Viewport,
    build_pixel_buffer,
    compute_grid,
    draw_orbit,
    label_orbit,
    pixel_buffer_to_image,
)
from mandelpath.engine import DEFAULT_CHUNK_SIZE
from mandelpath.palette import PALETTES

from argparse import ArgumentParser


@dataclass
class OutputConfig:
    animated: bool
    path: Path
    image_format: str


def build_parser():
    parser = ArgumentParser(description='Render the Mandelbrot set from its escape times and escape paths.')

    parser.add_argument('--max-iterations', type=int,
                        dest='max_iterations', help='maximum number of iterations of z = z*z + c per cell',
                        metavar='MAX_ITERATIONS', default=100)

    parser.add_argument('--pixel-width', type=int,
                        dest='pixel_width', help='number of cells along the x-axis',
                        metavar='PIXEL_WIDTH', default=400)

    parser.add_argument('--pixel-height', type=int,
                        dest='pixel_height', help='number of cells along the y-axis',
                        metavar='PIXEL_HEIGHT', default=400)

    parser.add_argument('--x-center', type=float,
                        dest='x_center', help='real part of the viewport center',
                        metavar='X_CENTER', default=-0.4)

    parser.add_argument('--y-center', type=float,
                        dest='y_center', help='imaginary part of the viewport center',
                        metavar='Y_CENTER', default=0.0)

    parser.add_argument('--scale', type=float,
                        dest='scale', help='zoom level; the viewport is 4/SCALE wide with the aspect of the pixel grid',
                        metavar='SCALE', default=1.0)

    parser.add_argument('--x-width', type=float,
                        dest='x_width', help='explicit width of the viewport in the complex plane (overrides --scale)',
                        metavar='X_WIDTH', default=None)

    parser.add_argument('--y-width', type=float,
                        dest='y_width', help='explicit height of the viewport; derived from --x-width and the pixel aspect when omitted',
                        metavar='Y_WIDTH', default=None)

    parser.add_argument('--precision', choices=['single', 'double'], default='single',
                        help='floating point precision of the iteration.')

    parser.add_argument('--palette', choices=PALETTES, default='smooth',
                        help='"smooth" hue palette, "grayscale" by escape time, or a matplotlib "colormap".')

    parser.add_argument('--colormap', type=str,
                        dest='colormap', help='matplotlib colormap used by --palette colormap (e.g. "viridis", "inferno")',
                        metavar='COLORMAP', default='twilight_shifted')

    parser.add_argument('--inside-color', type=str, default='#000000',
                        help='Hex color for cells that never escape.')

    parser.add_argument('--axes', action='store_true',
                        help='paint the real and imaginary axes over the image.')

    parser.add_argument('--axis-epsilon', type=float, default=None,
                        help='half-thickness of the axis band in complex units. Default: half a cell.')

    parser.add_argument('--orbit', type=int, nargs=2, metavar=('ROW', 'COL'), default=None,
                        help='draw the escape path of the cell at ROW, COL over the image.')

    parser.add_argument('--frames', type=int,
                        dest='frames', help='number of frames; more than one writes a zoom GIF',
                        metavar='FRAMES', default=1)

    parser.add_argument('--zoom-factor', type=float,
                        dest='zoom_factor', help='factor applied to the viewport size each frame. Choose < 1 for zoom in, >1 for zoom out',
                        metavar='ZOOM_FACTOR', default=0.8)

    parser.add_argument('--output', dest='output', type=str,
                        help='Destination file. Defaults to mandelbrot.<format>, or zoom.gif for several frames.')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format for single images. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('--workers', type=int, default=None,
                        help='number of worker threads. Default: one per CPU.')

    parser.add_argument('--chunk-size', type=int, dest='chunk_size', default=DEFAULT_CHUNK_SIZE,
                        help='number of cells handed to a worker at a time.')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow diagnostics and timings.')

    return parser


def resolve_output_config(opt, parser: ArgumentParser) -> OutputConfig:
    if opt.frames < 1:
        parser.error("--frames must be at least 1.")

    image_format = (getattr(opt, "format", "png") or "png").lower().lstrip(".")
    if not image_format:
        image_format = "png"

    animated = opt.frames > 1
    output_arg = getattr(opt, "output", None)

    if not output_arg:
        default_name = "zoom.gif" if animated else f"mandelbrot.{image_format}"
        return OutputConfig(animated, Path(default_name).expanduser().resolve(), image_format)

    output_path = Path(output_arg).expanduser()
    if output_path.exists() and output_path.is_dir():
        parser.error("--output must point to a file, not a directory.")

    if animated:
        if output_path.suffix:
            if output_path.suffix.lower() != ".gif":
                parser.error("GIF outputs must end with .gif.")
        else:
            output_path = output_path.with_suffix(".gif")
    else:
        expected_suffix = f".{image_format}"
        if output_path.suffix:
            if output_path.suffix.lower() != expected_suffix.lower():
                parser.error(f"--output extension {output_path.suffix} does not match --format {image_format}.")
        else:
            output_path = output_path.with_suffix(expected_suffix)

    return OutputConfig(animated, output_path.resolve(), image_format)


def build_viewport(opt, parser: ArgumentParser) -> Viewport:
    center = complex(opt.x_center, opt.y_center)
    try:
        if opt.x_width is None:
            if opt.y_width is not None:
                parser.error("--y-width requires --x-width.")
            return Viewport.from_scale(center, opt.scale, opt.pixel_width, opt.pixel_height)
        y_width = opt.y_width
        if y_width is None:
            y_width = opt.x_width * opt.pixel_height / opt.pixel_width
        return Viewport(
            center=center,
            dimensions=complex(opt.x_width, y_width),
            pixel_width=opt.pixel_width,
            pixel_height=opt.pixel_height,
        )
    except ValueError as exc:
        parser.error(str(exc))


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write a single image to ``output_path`` using the provided format."""

    pil_format = _pil_format_name(image_format)
    if pil_format == "JPEG":
        image = image.convert("RGB")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=pil_format)


def _hex_rgba(hex_color):
    hex_color = hex_color.lstrip('#')
    if len(hex_color) != 6:
        raise ValueError('inside_color must be in the form #RRGGBB.')
    try:
        return tuple(int(hex_color[i:i + 2], 16) for i in (0, 2, 4)) + (255,)
    except ValueError as exc:
        raise ValueError('inside_color must contain only hexadecimal digits.') from exc


def render_image(opt, params: RenderParameters, inside_rgba, axes) -> PIL.Image.Image:
    """Compute one grid and turn it into an image, with the orbit overlay when requested."""

    viewport = params.viewport
    started = time.perf_counter()
    grid = compute_grid(params, workers=opt.workers, chunk_size=opt.chunk_size)
    log("computed %d cells in %.3fs (%d escaped)" % (len(grid), time.perf_counter() - started, int(np.count_nonzero(grid.escaped))))

    pixels = build_pixel_buffer(
        grid,
        opt.palette,
        colormap=opt.colormap,
        inside_color=inside_rgba,
        axes=axes,
        viewport=viewport,
    )
    image = pixel_buffer_to_image(pixels, viewport.pixel_width, viewport.pixel_height)

    if opt.orbit is not None:
        row, column = opt.orbit
        record = grid.record_at(row, column)
        image = label_orbit(draw_orbit(image, record, viewport), record)
    return image


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    global VERBOSE
    VERBOSE = bool(opt.verbose)

    output_config = resolve_output_config(opt, parser)

    if opt.pixel_width < 1 or opt.pixel_height < 1:
        parser.error("--pixel-width and --pixel-height must be positive.")
    if opt.max_iterations < 0:
        parser.error("--max-iterations must be non-negative.")
    if opt.workers is not None and opt.workers < 1:
        parser.error("--workers must be at least 1.")
    if opt.chunk_size < 1:
        parser.error("--chunk-size must be at least 1.")
    if opt.zoom_factor <= 0:
        parser.error("--zoom-factor must be positive.")

    viewport = build_viewport(opt, parser)
    if opt.orbit is not None:
        try:
            viewport.pixel_index(*opt.orbit)
        except GridIndexError as exc:
            parser.error(f"--orbit: {exc}")

    try:
        inside_rgba = _hex_rgba(opt.inside_color)
    except ValueError:
        print(f"Invalid inside_color '{opt.inside_color}', defaulting to black.")
        inside_rgba = (0, 0, 0, 255)

    axes = AxisOverlay(epsilon=opt.axis_epsilon) if opt.axes else None

    log("TensorFlow version: %s" % tf.__version__)
    log("viewport: center=%s dimensions=%s grid=%dx%d" % (viewport.center, viewport.dimensions, viewport.pixel_width, viewport.pixel_height))

    output_config.path.parent.mkdir(parents=True, exist_ok=True)

    if not output_config.animated:
        params = RenderParameters(viewport=viewport, iteration_max=opt.max_iterations, precision=opt.precision)
        image = render_image(opt, params, inside_rgba, axes)
        write_single_image(image, output_config.path, output_config.image_format)
        log("wrote %s" % output_config.path)
        return

    writer = imageio.get_writer(str(output_config.path), mode='I', duration=0.1, loop=0)
    try:
        frame_viewport = viewport
        for i in range(opt.frames):
            print("frame {0} out of {1}".format(i, opt.frames), end='\r')
            params = RenderParameters(viewport=frame_viewport, iteration_max=opt.max_iterations, precision=opt.precision)
            image = render_image(opt, params, inside_rgba, axes)
            writer.append_data(np.asarray(image.convert("RGB")))
            frame_viewport = frame_viewport.zoomed(opt.zoom_factor)
    finally:
        writer.close()
    log("wrote %s" % output_config.path)


if __name__ == '__main__':
    main()
