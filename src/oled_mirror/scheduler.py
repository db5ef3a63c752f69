"""Fixed-rate read, decode and render loop."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .config import MirrorConfig
from .display import DisplaySink
from .framebuffer import allocate, decode_pages
from .memory import PacketChannel, halt, read_memory, read_pointer, resume

logger = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class FrameClock:
    """Paces iterations to ``interval`` seconds without catching up missed ticks."""

    interval: float
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    last_tick: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        self.last_tick = self.clock()

    @classmethod
    def from_frequency(cls, frequency: float, **kwargs: object) -> FrameClock:
        if frequency <= 0:
            raise ValueError(f"frequency must be positive, got {frequency}")
        return cls(1.0 / frequency, **kwargs)  # type: ignore[arg-type]

    def wait(self) -> float:
        """Sleep out the rest of the interval and start the next tick.

        Returns the time the finished tick took.  The next tick is measured
        from the moment this returns, so a late tick never shortens the one
        after it.
        """
        elapsed = self.clock() - self.last_tick
        if elapsed < self.interval:
            self.sleep(self.interval - elapsed)
        self.last_tick = self.clock()
        return elapsed


@dataclass(frozen=True)
class Frame:
    """Outcome of one scheduler tick."""

    index: int
    address: int | None
    received: int
    stale: bool


class FrameScheduler:
    """Drives the mirror: pointer read, framebuffer read, decode, render, pace."""

    def __init__(
        self,
        config: MirrorConfig,
        channel: PacketChannel,
        pointer_address: int,
        sink: DisplaySink,
        *,
        clock: FrameClock | None = None,
    ) -> None:
        self.config = config
        self.channel = channel
        self.pointer_address = pointer_address
        self.sink = sink
        self.clock = clock or FrameClock.from_frequency(config.frequency)
        self.buffer = allocate(config.width, config.height)
        self.state = SchedulerState.RUNNING
        self.frames = 0

    def _read_target(self) -> tuple[int | None, bytes]:
        # The firmware may swap buffers, so the pointer is followed every frame.
        address = read_pointer(self.channel, self.pointer_address)
        data = b""
        if address is not None:
            data = read_memory(self.channel, address, self.config.block_size)
        return address, data

    def _read_frame(self) -> tuple[int | None, bytes]:
        if not self.config.halt:
            return self._read_target()
        halt(self.channel)
        try:
            result = self._read_target()
        except OSError:
            # Dead channel, nothing to resume.
            raise
        except Exception:
            resume(self.channel)
            raise
        resume(self.channel)
        return result

    def tick(self) -> Frame:
        """Run one read/decode/render iteration."""
        if self.state is SchedulerState.STOPPED:
            raise RuntimeError("scheduler has stopped")

        try:
            address, data = self._read_frame()
            stale = len(data) < self.config.block_size
            decode_pages(data, self.config.width, self.config.height, out=self.buffer)
            self.sink.show(self.buffer, self.config.width, self.config.height, stale=stale)
        except Exception as exc:
            self.state = SchedulerState.STOPPED
            logger.error("Stopping after %d frames: %s", self.frames, exc)
            raise
        if stale:
            logger.debug("Frame %d is stale (%d bytes received)", self.frames, len(data))

        if self.sink.quit_requested:
            logger.info("Quit requested after %d frames", self.frames + 1)
            self.state = SchedulerState.STOPPED

        frame = Frame(index=self.frames, address=address, received=len(data), stale=stale)
        self.frames += 1
        return frame

    def run(self, max_frames: int | None = None) -> int:
        """Tick until stopped (or ``max_frames`` ticks) and return the frame count."""
        while self.state is SchedulerState.RUNNING:
            self.tick()
            if max_frames is not None and self.frames >= max_frames:
                break
            if self.state is SchedulerState.RUNNING:
                self.clock.wait()
        return self.frames
