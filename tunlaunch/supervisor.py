from collections.abc import Iterable
from dataclasses import dataclass
import logging
import os
import signal
import subprocess

from .common import exit_status
from .errors import ChildCrashed, SpawnFailed

logger = logging.getLogger(__name__)


@dataclass
class ChildHandle:
    process: subprocess.Popen[bytes]

    @property
    def pid(self) -> int:
        return self.process.pid


def spawn(
        artifact: str | os.PathLike[str],
        sigmask: Iterable[int] | None = None) -> ChildHandle:
    '''
    Start artifact with no arguments in a new process group, so it isn't part
    of the terminal's foreground group and doesn't get the terminal's SIGINT
    directly. The environment is inherited; stdin is /dev/null, as for a
    background job.

    If sigmask is given, the child's signal mask is set to it before exec.
    This undoes any blocking the caller has in place while it gets ready to
    relay signals.
    '''
    mask = None if sigmask is None else set(sigmask)

    def set_mask() -> None:
        signal.pthread_sigmask(signal.SIG_SETMASK, mask)

    try:
        process = subprocess.Popen(
                [os.fspath(artifact)],
                process_group=0,
                stdin=subprocess.DEVNULL,
                preexec_fn=None if mask is None else set_mask)
    except OSError as e:
        raise SpawnFailed(f'could not start {artifact}: {e}') from e

    logger.info('started %s as pid %d', artifact, process.pid)
    return ChildHandle(process)


def poll(child: ChildHandle) -> int | None:
    '''
    Return the child's exit status if it has finished, otherwise None.
    '''
    returncode = child.process.poll()
    if returncode is None:
        return None

    return exit_status(returncode)


def wait(child: ChildHandle) -> int:
    '''
    Block until the child exits and return its exit status. Signal handlers
    that run during the wait don't end it; the wait is resumed afterwards.

    Raises ChildCrashed if the child was killed by a signal.
    '''
    returncode = child.process.wait()
    if returncode < 0:
        raise ChildCrashed(child.pid, -returncode)

    logger.info('child process %d exited with status %d',
                child.pid, returncode)
    return returncode


def terminate(child: ChildHandle, timeout: float = 5.0) -> int:
    '''
    Send SIGTERM to the child and wait for it, escalating to SIGKILL if it
    hasn't exited after timeout seconds. Returns the child's exit status.
    '''
    if child.process.poll() is None:
        logger.info('terminating child process %d', child.pid)
        child.process.terminate()
        try:
            child.process.wait(timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                    'child process %d ignored SIGTERM, killing it', child.pid)
            child.process.kill()
            child.process.wait()

    return exit_status(child.process.returncode)
