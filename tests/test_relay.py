import signal

import pytest

from conftest import wait_for_file
from tunlaunch import relay, supervisor
from tunlaunch.relay import SignalRelay


def test_interrupt_is_forwarded_and_child_status_wins(make_executable, tmp_path, children):
    ready = tmp_path / "ready"
    artifact = make_executable(
        f"""
        import pathlib, signal, sys, time
        signal.signal(signal.SIGINT, lambda *args: sys.exit(7))
        pathlib.Path({str(ready)!r}).touch()
        time.sleep(30)
        sys.exit(1)
        """
    )
    child = supervisor.spawn(artifact)
    children.append(child)
    wait_for_file(ready)

    with SignalRelay(child.pid) as sig_relay:
        signal.raise_signal(signal.SIGINT)
        status = supervisor.wait(child)

    assert sig_relay.forwarded == [signal.SIGINT]
    assert status == 7


def test_relay_restores_previous_handlers():
    before = signal.getsignal(signal.SIGTERM)

    with SignalRelay(12345):
        assert signal.getsignal(signal.SIGTERM) != before

    assert signal.getsignal(signal.SIGTERM) == before


def test_forward_to_exited_child_is_ignored(monkeypatch):
    def gone(pid, signum):
        raise ProcessLookupError(pid)

    sig_relay = SignalRelay(12345)
    monkeypatch.setattr(relay.os, "kill", gone)

    sig_relay._forward(signal.SIGTERM, None)

    assert sig_relay.forwarded == [signal.SIGTERM]


def test_signal_during_blocked_window_is_forwarded_after(monkeypatch):
    sent = []
    sig_relay = SignalRelay(12345, signals=[signal.SIGUSR1])

    with relay.blocked_signals([signal.SIGUSR1]):
        signal.raise_signal(signal.SIGUSR1)
        monkeypatch.setattr(relay.os, "kill", lambda pid, signum: sent.append((pid, signum)))
        sig_relay.install()
        assert sent == []

    try:
        assert sent == [(12345, signal.SIGUSR1)]
    finally:
        sig_relay.restore()


def test_blocked_signals_yields_previous_mask():
    with relay.blocked_signals([signal.SIGUSR2]) as previous:
        assert signal.SIGUSR2 not in previous
        assert signal.SIGUSR2 in signal.pthread_sigmask(signal.SIG_BLOCK, [])

    assert signal.SIGUSR2 not in signal.pthread_sigmask(signal.SIG_BLOCK, [])


@pytest.mark.parametrize(("signum", "code"), [(signal.SIGTERM, 9), (signal.SIGINT, 8)])
def test_each_relayed_signal_reaches_child(make_executable, tmp_path, children, signum, code):
    ready = tmp_path / "ready"
    artifact = make_executable(
        f"""
        import pathlib, signal, sys, time
        signal.signal({int(signum)}, lambda *args: sys.exit({code}))
        pathlib.Path({str(ready)!r}).touch()
        time.sleep(30)
        sys.exit(1)
        """
    )
    child = supervisor.spawn(artifact)
    children.append(child)
    wait_for_file(ready)

    with SignalRelay(child.pid) as sig_relay:
        signal.raise_signal(signum)
        status = supervisor.wait(child)

    assert sig_relay.forwarded == [signum]
    assert status == code
