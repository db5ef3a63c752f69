"""Live mirror of a target's OLED framebuffer read through a GDB server."""

from __future__ import annotations

import logging

from .config import ConfigError, MirrorConfig, build_parser, config_from_args
from .display import THEMES, MatplotlibDisplay
from .memory import ReadError
from .rsp import RSPError
from .scheduler import FrameScheduler
from .symbols import NmSymbolResolver, StaticSymbolResolver, SymbolNotFound, SymbolResolver
from .transport import ConnectError, RSPTransport

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def make_resolver(config: MirrorConfig) -> SymbolResolver:
    """Pick the symbol resolver matching ``config``."""
    if config.address is not None:
        return StaticSymbolResolver(config.address)
    assert config.elf is not None
    return NmSymbolResolver(config.elf, nm=config.nm)


def main(argv: list[str] | None = None) -> None:
    """Parse the command line, attach to the target and mirror its display."""
    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    try:
        config = config_from_args(args)
    except ConfigError as exc:
        parser.error(str(exc))

    try:
        pointer = make_resolver(config).resolve(config.symbol)
    except SymbolNotFound as exc:
        raise SystemExit(f"symbol lookup failed: {exc}") from exc
    logger.info("Framebuffer pointer %s at 0x%08X", config.symbol, pointer)

    try:
        transport = RSPTransport.connect(
            config.host, config.port, timeout=config.connect_timeout,
        )
    except ConnectError as exc:
        raise SystemExit(str(exc)) from exc

    with transport:
        display = MatplotlibDisplay(
            config.width,
            config.height,
            scale=config.scale,
            theme=THEMES[config.theme],
            title=f"OLED mirror ({config.endpoint})",
        )
        try:
            scheduler = FrameScheduler(config, transport, pointer, display)
            frames = scheduler.run()
        except (RSPError, ReadError, OSError) as exc:
            raise SystemExit(f"mirror stopped: {exc}") from exc
        except KeyboardInterrupt:
            logger.info("Interrupted")
        else:
            logger.info("Rendered %d frames", frames)
        finally:
            display.close()


if __name__ == "__main__":
    main()
