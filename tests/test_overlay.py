import numpy as np
import PIL.Image

from mandelpath import EscapeRecord, Viewport, draw_orbit, label_orbit


def make_viewport():
    return Viewport(center=0j, dimensions=complex(4, 4), pixel_width=80, pixel_height=80)


def test_draw_orbit_marks_path_points():
    viewport = make_viewport()
    record = EscapeRecord(escape_time=None, path=np.array([0, 1 + 1j, -1 + 0.5j], dtype=np.complex64))
    image = PIL.Image.new("RGBA", (80, 80), (0, 0, 0, 255))

    drawn = draw_orbit(image, record, viewport)

    assert drawn.size == image.size
    assert drawn.mode == "RGBA"
    # c = 1+1i lands at (60, 20) and is drawn red
    r, g, b, _ = drawn.getpixel((60, 20))
    assert r > 100 and r > g and r > b
    # the input image is left alone
    assert image.getpixel((60, 20)) == (0, 0, 0, 255)


def test_single_point_path_draws_nothing():
    viewport = make_viewport()
    record = EscapeRecord(escape_time=None, path=np.zeros(1, dtype=np.complex64))
    image = PIL.Image.new("RGBA", (80, 80), (0, 0, 0, 255))
    drawn = draw_orbit(image, record, viewport)
    assert np.array_equal(np.asarray(drawn), np.asarray(image))


def test_label_orbit_writes_text():
    record = EscapeRecord(escape_time=3, path=np.array([0, 0.5 + 0.5j, 1, 3, 12], dtype=np.complex64))
    image = PIL.Image.new("RGBA", (200, 60), (0, 0, 0, 255))
    labelled = label_orbit(image, record)
    assert np.asarray(labelled)[..., :3].max() > 0

    bare = EscapeRecord(escape_time=None, path=np.zeros(1, dtype=np.complex64))
    assert np.array_equal(np.asarray(label_orbit(image, bare)), np.asarray(image))
