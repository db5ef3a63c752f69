from types import SimpleNamespace

import matplotlib
import numpy as np

matplotlib.use("Agg")

import oled_mirror.display as display  # noqa: E402
from oled_mirror.framebuffer import decode_pages  # noqa: E402

THEME = display.THEMES["oled-white"]


def test_render_bitmap_maps_bits_to_theme_colours() -> None:
    buffer = np.zeros(2, dtype=np.uint8)
    buffer[0] = 0b10000001

    rgb = display.render_bitmap(buffer, 16, 1, theme=THEME)

    assert rgb.shape == (1, 16, 3)
    assert rgb.dtype == np.uint8
    assert tuple(rgb[0, 0]) == THEME.on
    assert tuple(rgb[0, 7]) == THEME.on
    assert tuple(rgb[0, 1]) == THEME.off
    assert tuple(rgb[0, 8]) == THEME.off


def test_render_bitmap_scales_with_square_pixels() -> None:
    buffer = decode_pages(bytes([0x01]) + bytes(7), 8, 8)

    rgb = display.render_bitmap(buffer, 8, 8, scale=3, theme=THEME)

    assert rgb.shape == (24, 24, 3)
    assert (rgb[0:3, 0:3] == THEME.on).all()
    assert (rgb[3:, :] == THEME.off).all()
    assert (rgb[:, 3:] == THEME.off).all()


def test_matplotlib_display_quits_on_key_and_close() -> None:
    sink = display.MatplotlibDisplay(16, 8, scale=2, title="test")
    try:
        assert not sink.quit_requested
        sink._on_key(SimpleNamespace(key="x"))  # type: ignore[arg-type]
        assert not sink.quit_requested
        sink._on_key(SimpleNamespace(key="q"))  # type: ignore[arg-type]
        assert sink.quit_requested
    finally:
        sink.close()

    other = display.MatplotlibDisplay(16, 8)
    other._on_close(SimpleNamespace())  # type: ignore[arg-type]
    assert other.quit_requested
    other.close()


def test_matplotlib_display_shows_frames_and_marks_stale() -> None:
    sink = display.MatplotlibDisplay(16, 8, scale=2, title="mirror")
    buffer = np.full(16, 0xFF, dtype=np.uint8)
    try:
        sink.show(buffer, 16, 8, stale=True)
        assert (sink.im.get_array() == THEME.on).all()
        assert sink.window_title == "mirror (stale)"

        sink.show(np.zeros(16, dtype=np.uint8), 16, 8)
        assert (sink.im.get_array() == THEME.off).all()
        assert sink.window_title == "mirror"
    finally:
        sink.close()
