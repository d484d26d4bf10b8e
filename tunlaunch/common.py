from ctypes.util import find_library
from collections.abc import Callable, Sequence
import ctypes
import logging
import os
import subprocess

logger = logging.getLogger(__name__)

# Signature of the function used to run external commands. Tests substitute
# their own to avoid needing root, setcap or ip.
Runner = Callable[[Sequence[str]], subprocess.CompletedProcess[str]]

# Exit code used by shells when a command can't be executed at all.
EXIT_NOT_FOUND = 127


class LibraryNotFound(OSError):
    pass


def load_lib(name: str) -> ctypes.CDLL:
    '''
    Return a CDLL for the named library, or raise LibraryNotFound if it's not
    installed.
    '''
    fullname = find_library(name)
    if fullname is None:
        raise LibraryNotFound(f'Library not found: {name}')

    return ctypes.CDLL(fullname, use_errno=True)


def get_os_error() -> OSError:
    '''
    Fetch errno and return an OSError based on it.
    '''
    e = ctypes.get_errno()
    return OSError(e, os.strerror(e))


def run_command(cmd: Sequence[str]) -> subprocess.CompletedProcess[str]:
    '''
    Run cmd to completion and return the result without raising on a non-zero
    exit. stderr is captured so callers can classify failures; stdout goes to
    the terminal as usual.

    A program that can't be executed is reported the way a shell would, as a
    result with returncode 127.
    '''
    logger.debug('running: %s', ' '.join(cmd))
    try:
        return subprocess.run(
                list(cmd),
                stderr=subprocess.PIPE,
                text=True,
                check=False)
    except (FileNotFoundError, PermissionError) as e:
        return subprocess.CompletedProcess(
                list(cmd), EXIT_NOT_FOUND, stderr=f'{e}\n')


def exit_status(returncode: int) -> int:
    '''
    Convert a subprocess returncode to a shell-style exit status. Death by
    signal N (a negative returncode) becomes 128 + N.
    '''
    if returncode < 0:
        return 128 - returncode

    return returncode


def privileged(cmd: Sequence[str], use_sudo: bool) -> list[str]:
    if use_sudo:
        return ['sudo', *cmd]

    return list(cmd)


def default_use_sudo() -> bool:
    # No need for sudo if we're already root.
    return os.geteuid() != 0
