import argparse
from collections.abc import Sequence
from dataclasses import dataclass
from ipaddress import IPv4Interface
import logging
import shlex
import signal
import sys

from . import netconfig, relay, supervisor
from .build import build
from .common import Runner, default_use_sudo, run_command
from .errors import InterfaceNeverAppeared, LaunchError
from .privileges import DEFAULT_CAPABILITY, grant_capability, parse_capability

logger = logging.getLogger(__name__)

DEFAULT_BUILD_COMMAND = 'cargo build --release'
DEFAULT_ARTIFACT = './target/release/tcprust'


@dataclass(frozen=True)
class LaunchConfig:
    build_command: list[str] | None = None
    artifact: str = DEFAULT_ARTIFACT
    capability: str | None = DEFAULT_CAPABILITY
    verify_caps: bool = True
    use_sudo: bool = True
    interface: str = netconfig.DEFAULT_INTERFACE
    address: IPv4Interface = netconfig.DEFAULT_ADDRESS
    ready_timeout: float = 5.0
    initial_delay: float = 0.05
    max_delay: float = 1.0
    terminate_timeout: float = 5.0


def launch(config: LaunchConfig, runner: Runner = run_command) -> int:
    '''
    Build, grant, spawn, configure the interface and wait for the child.
    Returns the status the launcher should exit with: the child's own status
    if everything got that far, otherwise the exit code of the step that
    failed.
    '''
    try:
        artifact = build(config.build_command, config.artifact, runner)

        if config.capability is not None:
            grant_capability(
                    artifact,
                    config.capability,
                    use_sudo=config.use_sudo,
                    verify=config.verify_caps,
                    runner=runner)

        # Keep SIGINT/SIGTERM pending until the relay knows the child's pid,
        # so none are lost between spawn and installing the handlers.
        with relay.blocked_signals() as old_mask:
            child = supervisor.spawn(artifact, sigmask=old_mask)
            sig_relay = relay.SignalRelay(child.pid)
            sig_relay.install()
    except LaunchError as e:
        logger.error('%s', e)
        return e.exit_code

    try:
        return _supervise(config, child, runner)
    except LaunchError as e:
        logger.error('%s', e)
        return e.exit_code
    finally:
        sig_relay.restore()


def _supervise(
        config: LaunchConfig,
        child: supervisor.ChildHandle,
        runner: Runner) -> int:
    try:
        netconfig.configure_when_ready(
                config.interface,
                config.address.ip,
                config.address.network.prefixlen,
                child=child,
                timeout=config.ready_timeout,
                initial_delay=config.initial_delay,
                max_delay=config.max_delay,
                use_sudo=config.use_sudo,
                runner=runner)
    except InterfaceNeverAppeared:
        supervisor.terminate(child, config.terminate_timeout)
        raise

    return supervisor.wait(child)


def setup_logging(verbosity: int) -> None:
    if verbosity > 0:
        level = logging.DEBUG
    elif verbosity < 0:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
            logging.Formatter('tunlaunch: %(levelname)s %(message)s'))

    root = logging.getLogger('tunlaunch')
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


def _capability_arg(text: str) -> str:
    try:
        parse_capability(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e

    return text


def _positive_float(text: str) -> float:
    value = float(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f'must be positive, was {text}')

    return value


def parse_args(argv: Sequence[str]) -> tuple[LaunchConfig, int]:
    parser = argparse.ArgumentParser(
            prog='tunlaunch',
            description='Build a TUN endpoint, give it CAP_NET_ADMIN, run it '
                        'and configure its interface')
    parser.add_argument(
            '--build-command',
            default=DEFAULT_BUILD_COMMAND,
            help='command that builds the executable (default: %(default)s)')
    parser.add_argument(
            '--skip-build',
            action='store_true',
            help='use the existing executable without building it')
    parser.add_argument(
            '--artifact',
            default=DEFAULT_ARTIFACT,
            help='path of the executable to run (default: %(default)s)')
    parser.add_argument(
            '--capability',
            type=_capability_arg,
            default=DEFAULT_CAPABILITY,
            help='file capability to grant, in setcap(8) syntax '
                 '(default: %(default)s)')
    parser.add_argument(
            '--skip-grant',
            action='store_true',
            help="don't run setcap, e.g. if the file already has the "
                 'capability')
    parser.add_argument(
            '--no-verify-caps',
            dest='verify_caps',
            action='store_false',
            help="don't read the capability back from the file after setcap")
    parser.add_argument(
            '--sudo',
            action=argparse.BooleanOptionalAction,
            default=default_use_sudo(),
            help='run setcap and ip via sudo (default: unless running as '
                 'root)')
    parser.add_argument(
            '--interface', '-i',
            default=netconfig.DEFAULT_INTERFACE,
            help='name of the interface the executable creates '
                 '(default: %(default)s)')
    parser.add_argument(
            '--address', '-a',
            type=IPv4Interface,
            default=netconfig.DEFAULT_ADDRESS,
            help='address and prefix for the interface (default: '
                 '%(default)s)')
    parser.add_argument(
            '--ready-timeout',
            type=_positive_float,
            default=5.0,
            help='seconds to wait for the interface to appear '
                 '(default: %(default)s)')
    parser.add_argument(
            '--initial-delay',
            type=_positive_float,
            default=0.05,
            help='first delay between attempts to configure the interface '
                 '(default: %(default)s)')
    parser.add_argument(
            '--max-delay',
            type=_positive_float,
            default=1.0,
            help='maximum delay between attempts (default: %(default)s)')
    parser.add_argument(
            '--terminate-timeout',
            type=_positive_float,
            default=5.0,
            help='seconds to wait after SIGTERM before killing the child '
                 '(default: %(default)s)')
    parser.add_argument(
            '--verbose', '-v',
            action='store_true',
            help='log each command that gets run')
    parser.add_argument(
            '--quiet', '-q',
            action='store_true',
            help='only log warnings and errors')

    args = parser.parse_args(argv)

    config = LaunchConfig(
            build_command=(
                None if args.skip_build else shlex.split(args.build_command)),
            artifact=args.artifact,
            capability=None if args.skip_grant else args.capability,
            verify_caps=args.verify_caps,
            use_sudo=args.sudo,
            interface=args.interface,
            address=args.address,
            ready_timeout=args.ready_timeout,
            initial_delay=args.initial_delay,
            max_delay=args.max_delay,
            terminate_timeout=args.terminate_timeout)

    return config, int(args.verbose) - int(args.quiet)


def main(argv: Sequence[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    config, verbosity = parse_args(argv)
    setup_logging(verbosity)

    try:
        return launch(config)
    except KeyboardInterrupt:
        # Interrupted during build or grant, before there was a child to
        # relay the signal to.
        logger.error('interrupted')
        return 128 + signal.SIGINT


if __name__ == '__main__':
    sys.exit(main())
