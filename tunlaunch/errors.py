'''
Failures of the launch sequence. Each one knows the exit status the launcher
should finish with when it's the reason for stopping.
'''
import os
import signal


class LaunchError(Exception):
    exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class BuildFailed(LaunchError):
    pass


class CapabilityGrantFailed(LaunchError):
    pass


class SpawnFailed(LaunchError):
    exit_code = os.EX_OSERR


class InterfaceConfigFailed(LaunchError):
    '''
    An ip(8) request against the interface failed for a reason not covered by
    a more specific subclass.
    '''
    exit_code = os.EX_SOFTWARE

    def __init__(self, ifname: str, detail: str) -> None:
        super().__init__(f'{ifname}: {detail}')
        self.ifname = ifname
        self.detail = detail


class InterfaceNotFound(InterfaceConfigFailed):
    pass


class CommandInterrupted(InterfaceConfigFailed):
    '''
    ip(8) was killed by a signal before it could finish, typically the
    terminal's SIGINT reaching the launcher's own process group.
    '''

    def __init__(self, ifname: str, signum: int) -> None:
        super().__init__(ifname, f'ip killed by signal {signum}')
        self.signum = signum
        self.exit_code = 128 + signum


class AddressConflict(InterfaceConfigFailed):
    exit_code = os.EX_CONFIG


class PermissionDenied(InterfaceConfigFailed):
    exit_code = os.EX_NOPERM


class InterfaceNeverAppeared(LaunchError):
    exit_code = os.EX_UNAVAILABLE

    def __init__(self, ifname: str, timeout: float) -> None:
        super().__init__(
                f'interface {ifname} did not appear within {timeout:g}s')
        self.ifname = ifname
        self.timeout = timeout


class ChildExited(LaunchError):
    '''
    The child finished before setup was complete. exit_code is the child's
    own status, so it propagates unchanged.
    '''

    def __init__(self, pid: int, status: int) -> None:
        super().__init__(
                f'child process {pid} exited with status {status} during '
                'setup',
                status)
        self.pid = pid


class ChildCrashed(LaunchError):
    '''
    The child was killed by a signal it didn't handle. Like a shell, this is
    reported as 128 + the signal number.
    '''

    def __init__(self, pid: int, signum: int) -> None:
        super().__init__(
                f'child process {pid} killed by signal {signum} '
                f'({signal.strsignal(signum)})',
                128 + signum)
        self.pid = pid
        self.signum = signum
