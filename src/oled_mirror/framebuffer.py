"""Conversion of page-addressed OLED memory into a row-major bitmap.

SSD1306/SSD1309 style controllers (and the firmware framebuffers that feed
them) store the image as ``height / 8`` pages of ``width`` bytes.  Byte ``x``
of page ``p`` holds the eight pixels of column ``x`` on rows ``p*8`` to
``p*8 + 7``, least-significant bit on top::

    page 0: [x=0][x=1] ... [x=width-1]     bit 0 -> row 0, bit 7 -> row 7
    page 1: [x=0][x=1] ... [x=width-1]     bit 0 -> row 8, bit 7 -> row 15

The decoded bitmap is row-major with eight horizontal pixels per byte,
most-significant bit first, which is what Pillow's ``"1"`` mode expects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy.typing import NDArray

    DisplayBuffer: TypeAlias = NDArray[np.uint8]
else:
    DisplayBuffer: TypeAlias = Any

PAGE_HEIGHT = 8


def buffer_size(width: int, height: int) -> int:
    """Return the byte length of a ``width`` x ``height`` 1-bpp bitmap."""
    return width * height // 8


def page_block_size(width: int, height: int) -> int:
    """Return the number of bytes the target keeps for one full frame."""
    return width * (height // PAGE_HEIGHT)


def allocate(width: int, height: int) -> DisplayBuffer:
    """Return a blank display buffer."""
    return np.zeros(buffer_size(width, height), dtype=np.uint8)


def decode_pages(
    raw: bytes,
    width: int,
    height: int,
    out: DisplayBuffer | None = None,
) -> DisplayBuffer:
    """Decode page-packed ``raw`` memory into ``out`` and return it.

    Only the pixels covered by ``raw`` are written: a short block leaves the
    remaining pixels of ``out`` as they were, and bytes past the end of the
    last page are ignored.
    """
    if out is None:
        out = allocate(width, height)
    elif out.shape != (buffer_size(width, height),):
        raise ValueError(
            f"display buffer has shape {out.shape}, expected ({buffer_size(width, height)},)"
        )

    count = min(len(raw), page_block_size(width, height))
    if count == 0:
        return out

    src = np.frombuffer(raw, dtype=np.uint8, count=count)
    bits = np.unpackbits(src, bitorder="little").reshape(count, PAGE_HEIGHT)
    index = np.arange(count)
    xs = np.broadcast_to((index % width)[:, None], bits.shape)
    ys = (index // width)[:, None] * PAGE_HEIGHT + np.arange(PAGE_HEIGHT)

    pixels = np.unpackbits(out, bitorder="big").reshape(height, width)
    pixels[ys, xs] = bits
    out[:] = np.packbits(pixels.reshape(-1), bitorder="big")
    return out


def to_pixels(buffer: DisplayBuffer, width: int, height: int) -> NDArray[np.bool_]:
    """Expand a display buffer into a ``(height, width)`` boolean array."""
    bits = np.unpackbits(np.asarray(buffer, dtype=np.uint8), bitorder="big")
    return bits[: width * height].reshape(height, width).astype(bool)
