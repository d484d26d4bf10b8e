'''
Forwarding of SIGINT and SIGTERM from the launcher to its child.

The child runs in its own process group, so an interrupt from the terminal
only reaches the launcher. The relay passes it on and lets the child shut
down (and remove its interface) on its own terms; the launcher keeps waiting
and exits with whatever status the child ends up with.
'''
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
import logging
import os
import signal
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

RELAYED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def blocked_signals(
        signals: Iterable[int] = RELAYED_SIGNALS) -> Iterator[set[int]]:
    '''
    Block signals for the duration of the with block, yielding the signal
    mask that was in place before. Anything that arrives meanwhile stays
    pending and is delivered when the old mask is restored.
    '''
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signals)
    try:
        yield set(previous)
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


class SignalRelay:
    def __init__(
            self,
            pid: int,
            signals: Iterable[int] = RELAYED_SIGNALS) -> None:
        # Set once, before any handler is installed.
        self.pid = pid
        self.signals = tuple(signals)
        self.forwarded: list[int] = []
        self._previous: dict[int, Any] = {}

    def install(self) -> None:
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self._forward)

    def restore(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)

        self._previous.clear()

    def __enter__(self) -> 'SignalRelay':
        self.install()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.restore()

    def _forward(self, signum: int, frame: FrameType | None) -> None:
        logger.info('forwarding %s to child process %d',
                    signal.Signals(signum).name, self.pid)
        self.forwarded.append(signum)
        try:
            os.kill(self.pid, signum)
        except ProcessLookupError:
            # Already exited, wait() will pick up its status.
            logger.debug('child process %d is gone', self.pid)
