"""Signal handling for the long-running utilities.

Handlers only flip attributes on a :class:`SignalFlags` instance; the main
loop consumes them at iteration boundaries.
"""

from __future__ import annotations

import signal
import sys
from dataclasses import dataclass


@dataclass
class SignalFlags:
    shutdown: bool = False
    need_header: bool = False
    resized: bool = False


def install_handlers(flags: SignalFlags, watch_resize: bool = False):
    """Route SIGINT, SIGCONT and (optionally) SIGWINCH to ``flags``.

    Returns a callable restoring the previous handlers.
    """

    def _on_interrupt(signum, frame):
        flags.shutdown = True

    def _on_continue(signum, frame):
        flags.need_header = True

    def _on_resize(signum, frame):
        flags.resized = True

    previous = {signal.SIGINT: signal.signal(signal.SIGINT, _on_interrupt)}
    if hasattr(signal, "SIGCONT"):
        previous[signal.SIGCONT] = signal.signal(signal.SIGCONT, _on_continue)
    if watch_resize and hasattr(signal, "SIGWINCH"):
        previous[signal.SIGWINCH] = signal.signal(signal.SIGWINCH, _on_resize)

    def restore():
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return restore


def stdout_is_tty() -> bool:
    return sys.stdout.isatty()
