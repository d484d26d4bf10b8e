'''
Address and link configuration of the child's TUN interface, using ip(8).

The interface is created by the child during its own startup, so it usually
doesn't exist yet when the launcher gets here. configure_when_ready() retries
with exponential backoff until it shows up or a timeout runs out.
'''
from collections.abc import Sequence
from ipaddress import IPv4Address, IPv4Interface
import logging
import time

from . import supervisor
from .common import Runner, privileged, run_command
from .errors import (
    AddressConflict,
    ChildExited,
    CommandInterrupted,
    InterfaceConfigFailed,
    InterfaceNeverAppeared,
    InterfaceNotFound,
    PermissionDenied,
)
from .supervisor import ChildHandle

logger = logging.getLogger(__name__)

DEFAULT_INTERFACE = 'tun0'
DEFAULT_ADDRESS = IPv4Interface('10.12.1.1/24')

# Substrings of ip(8) diagnostics, checked in order. Older iproute2 versions
# print "RTNETLINK answers: ..." with the strerror text, newer ones print
# their own messages.
_ERRORS: list[tuple[str, type[InterfaceConfigFailed]]] = [
    ('Cannot find device', InterfaceNotFound),
    ('does not exist', InterfaceNotFound),
    ('No such device', InterfaceNotFound),
    ('File exists', AddressConflict),
    ('Address already assigned', AddressConflict),
    ('Operation not permitted', PermissionDenied),
    ('Permission denied', PermissionDenied),
]


def _classify(ifname: str, detail: str) -> InterfaceConfigFailed:
    for text, error in _ERRORS:
        if text in detail:
            return error(ifname, detail)

    return InterfaceConfigFailed(ifname, detail)


def _ip(
        args: Sequence[str],
        ifname: str,
        use_sudo: bool,
        runner: Runner) -> None:
    result = runner(privileged(['ip', *args], use_sudo))
    if result.returncode < 0:
        raise CommandInterrupted(ifname, -result.returncode)
    if result.returncode != 0:
        detail = (result.stderr or '').strip()
        if not detail:
            detail = f'ip exited with status {result.returncode}'
        raise _classify(ifname, detail)


def assign_address(
        ifname: str,
        address: IPv4Address | str,
        prefix_length: int,
        use_sudo: bool = True,
        runner: Runner = run_command) -> None:
    iface = IPv4Interface((address, prefix_length))
    _ip(['addr', 'add', iface.with_prefixlen, 'dev', ifname],
        ifname, use_sudo, runner)


def set_link_up(
        ifname: str,
        use_sudo: bool = True,
        runner: Runner = run_command) -> None:
    _ip(['link', 'set', 'up', 'dev', ifname], ifname, use_sudo, runner)


def configure_when_ready(
        ifname: str,
        address: IPv4Address | str,
        prefix_length: int,
        child: ChildHandle | None = None,
        timeout: float = 5.0,
        initial_delay: float = 0.05,
        max_delay: float = 1.0,
        use_sudo: bool = True,
        runner: Runner = run_command) -> None:
    '''
    Assign address/prefix_length to ifname and bring it up, retrying while
    the interface doesn't exist or ip was killed by a signal. The delay
    between attempts starts at initial_delay and doubles up to max_delay.

    Raises InterfaceNeverAppeared once timeout seconds have passed without
    the interface showing up. If child is given and exits in the meantime,
    raises ChildExited with its exit status instead of waiting any longer.
    Other ip(8) failures are raised straight away.
    '''
    deadline = time.monotonic() + timeout
    delay = initial_delay
    assigned = False
    attempts = 0

    while True:
        attempts += 1
        try:
            if not assigned:
                assign_address(ifname, address, prefix_length,
                               use_sudo, runner)
                assigned = True
            set_link_up(ifname, use_sudo, runner)
            break
        except (InterfaceNotFound, CommandInterrupted) as e:
            logger.debug('attempt %d: %s', attempts, e.detail)

        if child is not None:
            status = supervisor.poll(child)
            if status is not None:
                raise ChildExited(child.pid, status)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise InterfaceNeverAppeared(ifname, timeout)

        time.sleep(min(delay, remaining))
        delay = min(delay * 2, max_delay)

    logger.info('%s on %s', ifname,
                IPv4Interface((address, prefix_length)).with_prefixlen)
