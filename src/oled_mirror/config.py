"""Command line surface and the immutable configuration built from it."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path

from .display import THEMES
from .framebuffer import PAGE_HEIGHT, buffer_size, page_block_size
from .symbols import DEFAULT_NM

DEFAULT_SYMBOL = "OLED::oledCurrentImage"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3333
DEFAULT_WIDTH = 128
DEFAULT_HEIGHT = 48
DEFAULT_FPS = 24.0


class ConfigError(ValueError):
    """Raised for settings the mirror cannot work with."""


@dataclass(frozen=True)
class MirrorConfig:
    """Everything the mirror needs to know, fixed for the life of the process."""

    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    frequency: float = DEFAULT_FPS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    elf: Path | None = None
    symbol: str = DEFAULT_SYMBOL
    address: int | None = None
    nm: str = DEFAULT_NM
    scale: int = 4
    theme: str = "oled-white"
    halt: bool = False
    connect_timeout: float = 5.0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise :class:`ConfigError` if the settings are inconsistent."""
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"display size must be positive, got {self.width}x{self.height}")
        if self.height % PAGE_HEIGHT:
            raise ConfigError(f"display height must be a multiple of 8, got {self.height}")
        if self.width % 8:
            raise ConfigError(f"display width must be a multiple of 8, got {self.width}")
        if self.frequency <= 0:
            raise ConfigError(f"refresh frequency must be positive, got {self.frequency}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"invalid port {self.port}")
        if self.scale < 1:
            raise ConfigError(f"scale must be at least 1, got {self.scale}")
        if self.theme not in THEMES:
            raise ConfigError(f"unknown theme {self.theme!r}")
        if self.address is None and self.elf is None:
            raise ConfigError("either an ELF file or --address is required")
        if self.address is not None and not 0 <= self.address <= 0xFFFFFFFF:
            raise ConfigError(f"address 0x{self.address:X} does not fit in 32 bits")

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def buffer_size(self) -> int:
        return buffer_size(self.width, self.height)

    @property
    def block_size(self) -> int:
        """Bytes to read from the target per frame."""
        return page_block_size(self.width, self.height)


def parse_address(text: str) -> int:
    """Parse ``0x``-prefixed or decimal addresses for argparse."""
    try:
        return int(text, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid address: {text!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="oled-mirror",
        description="Mirror a target's monochrome OLED framebuffer over a GDB server",
    )
    p.add_argument(
        "elf",
        nargs="?",
        type=Path,
        help="firmware ELF used to look up the framebuffer pointer",
    )
    p.add_argument(
        "--symbol",
        default=DEFAULT_SYMBOL,
        help="substring of the framebuffer pointer's symbol name",
    )
    p.add_argument(
        "--address",
        type=parse_address,
        help="address of the framebuffer pointer; skips the nm lookup",
    )
    p.add_argument("--nm", default=DEFAULT_NM, help="nm executable for symbol lookup")
    p.add_argument("--host", default=DEFAULT_HOST, help="GDB server host")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help="GDB server port")
    p.add_argument("--width", type=int, default=DEFAULT_WIDTH, help="display width in pixels")
    p.add_argument("--height", type=int, default=DEFAULT_HEIGHT, help="display height in pixels")
    p.add_argument("--fps", type=float, default=DEFAULT_FPS, help="refresh frequency in Hz")
    p.add_argument("--scale", type=int, default=4, help="window pixels per display pixel")
    p.add_argument("--theme", choices=sorted(THEMES), default="oled-white")
    p.add_argument(
        "--halt",
        action="store_true",
        help="halt the target around each read and continue it afterwards",
    )
    p.add_argument("--connect-timeout", type=float, default=5.0)
    p.add_argument("-v", "--verbose", action="count", default=0)
    return p


def config_from_args(args: argparse.Namespace) -> MirrorConfig:
    """Build a :class:`MirrorConfig` from parsed arguments."""
    return MirrorConfig(
        width=args.width,
        height=args.height,
        frequency=args.fps,
        host=args.host,
        port=args.port,
        elf=args.elf,
        symbol=args.symbol,
        address=args.address,
        nm=args.nm,
        scale=args.scale,
        theme=args.theme,
        halt=args.halt,
        connect_timeout=args.connect_timeout,
    )
