"""Rendering of decoded display buffers to a matplotlib window."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from matplotlib.backend_bases import Event, KeyEvent
    from numpy.typing import NDArray

    from .framebuffer import DisplayBuffer
else:
    NDArray: TypeAlias = Any
    DisplayBuffer: TypeAlias = Any

logger = logging.getLogger(__name__)

QUIT_KEYS = frozenset({"q", "escape"})
STALE_SUFFIX = " (stale)"


@dataclass(frozen=True)
class Theme:
    """Colours used for lit and unlit pixels."""

    on: tuple[int, int, int]
    off: tuple[int, int, int]


THEMES: dict[str, Theme] = {
    "oled-white": Theme(on=(255, 255, 255), off=(20, 20, 20)),
    "oled-blue": Theme(on=(0, 210, 255), off=(0, 20, 40)),
    "lcd-white": Theme(on=(32, 32, 32), off=(245, 245, 245)),
    "lcd-green": Theme(on=(32, 32, 32), off=(120, 185, 50)),
}


class DisplaySink(Protocol):
    """Receiver of decoded frames that can ask the mirror to stop."""

    @property
    def quit_requested(self) -> bool:
        """Return ``True`` once the user has asked to quit."""

    def show(
        self, buffer: DisplayBuffer, width: int, height: int, *, stale: bool = False,
    ) -> None:
        """Render ``buffer``; ``stale`` marks a frame that was not fully refreshed."""

    def close(self) -> None:
        """Release the rendering surface."""


def render_bitmap(
    buffer: DisplayBuffer,
    width: int,
    height: int,
    scale: int = 1,
    theme: Theme = THEMES["oled-white"],
) -> NDArray:
    """Return ``buffer`` as a ``(height*scale, width*scale, 3)`` RGB array."""
    try:
        from PIL import Image
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise RuntimeError("Rendering the display requires Pillow") from exc

    image = Image.frombytes(
        "1", (width, height), np.asarray(buffer, dtype=np.uint8).tobytes()
    )
    if scale != 1:
        image = image.resize((width * scale, height * scale), Image.Resampling.NEAREST)
    lit = np.asarray(image, dtype=bool)
    rgb = np.empty(lit.shape + (3,), dtype=np.uint8)
    rgb[...] = theme.off
    rgb[lit] = theme.on
    return rgb


class MatplotlibDisplay:
    """Interactive window showing the mirrored display.

    Closing the window or pressing ``q``/``Escape`` requests a quit.
    """

    def __init__(
        self,
        width: int,
        height: int,
        *,
        scale: int = 4,
        theme: Theme = THEMES["oled-white"],
        title: str = "OLED mirror",
    ) -> None:
        try:
            import matplotlib.pyplot as plt
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError("Matplotlib is required to show the display") from exc

        self._plt = plt
        self.width = width
        self.height = height
        self.scale = scale
        self.theme = theme
        self.title = title
        self._quit = False

        plt.ion()
        dpi = 100
        self.fig = plt.figure(figsize=(width * scale / dpi, height * scale / dpi), dpi=dpi)
        ax = self.fig.add_axes((0.0, 0.0, 1.0, 1.0))
        ax.set_axis_off()
        blank = np.zeros(width * height // 8, dtype=np.uint8)
        self.im = ax.imshow(
            render_bitmap(blank, width, height, scale, theme),
            interpolation="nearest",
            origin="upper",
        )
        self._set_title(title)
        self._cids = [
            self.fig.canvas.mpl_connect("close_event", self._on_close),
            self.fig.canvas.mpl_connect("key_press_event", self._on_key),
        ]

    def _set_title(self, text: str) -> None:
        self.window_title = text
        manager = self.fig.canvas.manager
        if manager is not None:
            manager.set_window_title(text)

    def _on_close(self, _: Event) -> None:
        logger.debug("Display window closed")
        self._quit = True

    def _on_key(self, event: KeyEvent) -> None:
        if event.key in QUIT_KEYS:
            self._quit = True

    @property
    def quit_requested(self) -> bool:
        return self._quit

    def show(
        self, buffer: DisplayBuffer, width: int, height: int, *, stale: bool = False,
    ) -> None:
        self.im.set_data(render_bitmap(buffer, width, height, self.scale, self.theme))
        self._set_title(self.title + STALE_SUFFIX if stale else self.title)
        self.fig.canvas.draw_idle()
        self.fig.canvas.flush_events()

    def close(self) -> None:
        for cid in self._cids:
            self.fig.canvas.mpl_disconnect(cid)
        self._cids.clear()
        self._plt.close(self.fig)
