"""Fixed-interval read-diff-print loop with vmstat-like header handling."""

from __future__ import annotations

import enum
import logging
import shutil
import sys
import time
from dataclasses import dataclass
from typing import Callable, Protocol, TextIO

from pgstats.errors import Interrupted
from pgstats.signals import SignalFlags

logger = logging.getLogger(__name__)

DEFAULT_LINES = 20

# Sleeps are cut in slices so that SIGINT is honoured within this delay.
SLEEP_SLICE = 0.1


class State(enum.Enum):
    INIT = "init"
    HEADER = "header"
    SAMPLE = "sample"
    SLEEP = "sleep"
    DONE = "done"


class Source(Protocol):
    def header(self) -> list[str]: ...

    def sample(self) -> list[str]: ...


@dataclass
class SamplerOptions:
    interval: float = 1
    count: int | None = None
    redisplay_header: bool = True


def terminal_rows() -> int:
    return shutil.get_terminal_size(fallback=(80, DEFAULT_LINES + 3)).lines


class Sampler:
    """Drives a :class:`Source` until ``count`` samples were printed.

    ``hdrcnt`` counts down the lines left before the header is repeated.
    A SIGCONT (``flags.need_header``) or a terminal resize
    (``flags.resized``) sets it back to one so the next sample gets a
    fresh header. Both flags are only read here, between two samples.
    """

    def __init__(
        self,
        source: Source,
        options: SamplerOptions,
        flags: SignalFlags,
        out: TextIO | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rows: Callable[[], int] = terminal_rows,
    ):
        self.source = source
        self.options = options
        self.flags = flags
        self.out = out or sys.stdout
        self._sleep = sleep
        self._rows = rows
        self.winlines = DEFAULT_LINES
        self.hdrcnt: int | None = 1
        self.state = State.INIT
        self.remaining = options.count

    def run(self) -> None:
        while self.state is not State.DONE:
            if self.flags.shutdown:
                self.state = State.DONE
                raise Interrupted("interrupted")
            self.state = self.step(self.state)

    def step(self, state: State) -> State:
        if state is State.INIT:
            self._consume_flags()
            return State.HEADER
        if state is State.HEADER:
            self._write(self.source.header())
            self.hdrcnt = self.winlines if self.options.redisplay_header else None
            return State.SAMPLE
        if state is State.SAMPLE:
            self._write(self.source.sample())
            if self.remaining is not None:
                self.remaining -= 1
                if self.remaining <= 0:
                    return State.DONE
            return State.SLEEP
        if state is State.SLEEP:
            self._pause(self.options.interval)
            self._consume_flags()
            if self.hdrcnt is not None:
                self.hdrcnt -= 1
                if self.hdrcnt <= 0:
                    return State.HEADER
            return State.SAMPLE
        return State.DONE

    def _consume_flags(self) -> None:
        if self.flags.resized:
            self.flags.resized = False
            self.winlines = max(self._rows() - 3, DEFAULT_LINES)
            logger.debug("terminal resized, %d lines between headers", self.winlines)
            if self.hdrcnt is not None:
                self.hdrcnt = 1
        if self.flags.need_header:
            self.flags.need_header = False
            if self.hdrcnt is not None:
                self.hdrcnt = 1

    def _pause(self, seconds: float) -> None:
        remaining = seconds
        while remaining > 0 and not self.flags.shutdown:
            chunk = min(SLEEP_SLICE, remaining)
            self._sleep(chunk)
            remaining = round(remaining - chunk, 6)

    def _write(self, lines: list[str]) -> None:
        for line in lines:
            print(line, file=self.out)
        self.out.flush()
