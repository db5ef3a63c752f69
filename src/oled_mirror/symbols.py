"""Lookup of the framebuffer pointer's address in the firmware image."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_NM = "arm-none-eabi-nm"
MAX_ADDRESS = 0xFFFFFFFF


class SymbolNotFound(LookupError):
    """Raised when a symbol cannot be resolved to an address."""


class SymbolResolver(Protocol):
    """Anything that can turn a symbol name into a 32-bit address."""

    def resolve(self, symbol: str) -> int:
        """Return the address of the first symbol whose name contains ``symbol``."""


@dataclass(frozen=True)
class StaticSymbolResolver:
    """Resolver for an address supplied up front (``--address``)."""

    address: int

    def resolve(self, symbol: str) -> int:
        logger.debug("Using pre-resolved address 0x%08X for %s", self.address, symbol)
        return self.address


def find_symbol(listing: str, symbol: str) -> int | None:
    """Search ``nm -C`` output for the first defined symbol containing ``symbol``."""
    for line in listing.splitlines():
        parts = line.split(maxsplit=2)
        # Undefined symbols have no address column.
        if len(parts) < 3 or symbol not in parts[2]:
            continue
        try:
            address = int(parts[0], 16)
        except ValueError:
            continue
        if address <= MAX_ADDRESS:
            return address
    return None


class NmSymbolResolver:
    """Resolve symbols by running the toolchain's ``nm`` over an ELF file."""

    def __init__(self, binary: str | Path, nm: str = DEFAULT_NM) -> None:
        self.binary = Path(binary)
        self.nm = nm

    def resolve(self, symbol: str) -> int:
        try:
            result = subprocess.run(
                [self.nm, "-C", str(self.binary)],
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError as exc:
            msg = f"{self.nm} is not installed; pass --address to skip symbol lookup"
            raise SymbolNotFound(msg) from exc
        except subprocess.CalledProcessError as exc:
            msg = f"{self.nm} failed on {self.binary}: {exc.stderr.strip()}"
            raise SymbolNotFound(msg) from exc

        address = find_symbol(result.stdout, symbol)
        if address is None:
            raise SymbolNotFound(f"no symbol matching {symbol!r} in {self.binary}")
        logger.debug("Resolved %s to 0x%08X via %s", symbol, address, self.nm)
        return address
