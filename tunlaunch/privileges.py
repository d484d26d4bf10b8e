'''
Attach a file capability to the built executable, so that it can configure
network interfaces when run by an unprivileged user.

The capability is stored in the file's extended attributes by setcap(8). See
capabilities(7), "File capabilities".
'''
import logging
import os
import re

from . import libcap
from .common import (
    LibraryNotFound,
    Runner,
    exit_status,
    privileged,
    run_command,
)
from .errors import CapabilityGrantFailed

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITY = 'cap_net_admin=eip'

_FLAGS = {
    'e': libcap.CAP_EFFECTIVE,
    'p': libcap.CAP_PERMITTED,
    'i': libcap.CAP_INHERITABLE,
}

# Capabilities this module knows how to verify. Anything else is granted but
# not checked.
_CAP_NUMBERS = {
    'cap_net_admin': libcap.CAP_NET_ADMIN,
}


def parse_capability(text: str) -> tuple[str, list[int]]:
    '''
    Split a single-clause capability descriptor such as "cap_net_admin=eip"
    into the capability name and the libcap flag values.
    '''
    match = re.fullmatch(r'(cap_[a-z_]+)=([eip]+)', text)
    if match is None:
        raise ValueError(f'Unsupported capability descriptor: {text}')

    name, flags = match.groups()
    return name, [_FLAGS[f] for f in sorted(set(flags))]


def grant_capability(
        artifact: str | os.PathLike[str],
        capability: str = DEFAULT_CAPABILITY,
        use_sudo: bool = True,
        verify: bool = True,
        runner: Runner = run_command) -> None:
    '''
    Run setcap to attach capability to artifact. Raises CapabilityGrantFailed
    with setcap's exit code if it fails, or with code 1 if the capability
    can't be found on the file afterwards.
    '''
    cmd = privileged(['setcap', capability, os.fspath(artifact)], use_sudo)
    logger.info('granting %s to %s', capability, artifact)
    result = runner(cmd)
    if result.returncode != 0:
        status = exit_status(result.returncode)
        if result.stderr:
            logger.error('%s', result.stderr.rstrip())
        raise CapabilityGrantFailed(
                f'setcap exited with status {status}', status)

    if verify:
        verify_capability(artifact, capability)


def verify_capability(
        artifact: str | os.PathLike[str],
        capability: str) -> None:
    name, flags = parse_capability(capability)
    cap = _CAP_NUMBERS.get(name)
    if cap is None:
        logger.debug('not verifying %s, unknown capability', name)
        return

    try:
        with libcap.cap_get_file(artifact) as caps:
            logger.debug(
                    'file capabilities of %s: %s',
                    artifact, libcap.cap_to_text(caps).decode())
            missing = [
                    f for f in flags
                    if not libcap.cap_get_flag(caps, cap, f)]
    except LibraryNotFound:
        logger.warning('libcap not installed, skipping capability check')
        return
    except OSError as e:
        raise CapabilityGrantFailed(
                f'could not read capabilities of {artifact}: {e}') from e

    if missing:
        raise CapabilityGrantFailed(
                f'{name} is missing from the capabilities of {artifact}')
