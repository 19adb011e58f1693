"""
Tests for the Chrome + Lighthouse engine.

Tiny shell scripts in tmp_path stand in for the chrome and lighthouse
binaries, so these exercise the real subprocess handling: the hard audit
timeout, stderr classification, process teardown and temp-file cleanup.
"""

import signal
import subprocess
import sys
import tempfile
import time

import httpx
import pytest

import analysis.engine as engine_module
from analysis.engine import BrowserHost, ChromeHost, ChromeLighthouseEngine
from analysis.errors import (
    AttemptError,
    AttemptTimeoutError,
    EngineLaunchError,
    ProtocolError,
    TargetClosedError,
)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell scripts")


class StubHost(BrowserHost):
    @property
    def port(self) -> int:
        return 9222

    def close(self) -> None:
        pass


def _script(tmp_path, name: str, body: str) -> str:
    path = tmp_path / name
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def scratch_dir(tmp_path, monkeypatch):
    """Route tempfile into tmp_path so leftovers can be checked."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    return scratch


def _engine(lighthouse: str, chrome: str = "/bin/true", startup_timeout: float = 5.0):
    return ChromeLighthouseEngine(
        chrome_path=chrome, lighthouse_path=lighthouse, startup_timeout=startup_timeout
    )


def _wait_for(path, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not path.exists():
        if time.monotonic() > deadline:
            raise AssertionError(f"{path} never appeared")
        time.sleep(0.02)


# ── audit() ─────────────────────────────────────────────────────


def test_audit_returns_parsed_report_and_passes_config(tmp_path, scratch_dir):
    # Echo the config file back as the "report"
    lighthouse = _script(tmp_path, "lighthouse", (
        'for arg in "$@"; do\n'
        '  case "$arg" in --config-path=*) cat "${arg#--config-path=}";; esac\n'
        'done'
    ))
    config = {"extends": "lighthouse:default", "settings": {"onlyCategories": ["seo"]}}

    report = _engine(lighthouse).audit("https://example.com", StubHost(), config, timeout=10)

    assert report == config
    assert list(scratch_dir.glob("audit-config-*")) == []


def test_audit_targets_the_host_port(tmp_path, scratch_dir):
    lighthouse = _script(tmp_path, "lighthouse", 'printf \'{"argv": "%s"}\' "$*"')

    report = _engine(lighthouse).audit("https://example.com", StubHost(), {}, timeout=10)

    argv = report["argv"]
    assert argv.startswith("https://example.com ")
    assert "--port=9222" in argv
    assert "--output=json" in argv


def test_audit_timeout_raises_attempt_timeout(tmp_path, scratch_dir):
    lighthouse = _script(tmp_path, "lighthouse", "exec sleep 30")

    started = time.monotonic()
    with pytest.raises(AttemptTimeoutError, match="exceeded"):
        _engine(lighthouse).audit("https://example.com", StubHost(), {}, timeout=0.5)

    assert time.monotonic() - started < 10
    assert list(scratch_dir.glob("audit-config-*")) == []


def test_target_close_on_stderr_is_classified(tmp_path, scratch_dir):
    lighthouse = _script(tmp_path, "lighthouse", (
        'echo "TargetCloseError: Protocol error (Runtime.evaluate): Target closed" >&2\n'
        "exit 1"
    ))

    with pytest.raises(TargetClosedError, match="Target closed"):
        _engine(lighthouse).audit("https://example.com", StubHost(), {}, timeout=10)


def test_protocol_error_on_stderr_is_classified(tmp_path, scratch_dir):
    lighthouse = _script(tmp_path, "lighthouse", (
        'echo "Runtime error encountered: PROTOCOL_ERROR navigating" >&2\n'
        "exit 1"
    ))

    with pytest.raises(ProtocolError):
        _engine(lighthouse).audit("https://example.com", StubHost(), {}, timeout=10)


def test_unrecognized_failure_is_a_plain_attempt_error(tmp_path, scratch_dir):
    lighthouse = _script(tmp_path, "lighthouse", "exit 2")

    with pytest.raises(AttemptError) as exc_info:
        _engine(lighthouse).audit("https://example.com", StubHost(), {}, timeout=10)

    assert type(exc_info.value) is AttemptError
    assert str(exc_info.value) == "Lighthouse exited with an error"


def test_non_json_output_is_an_attempt_error(tmp_path, scratch_dir):
    lighthouse = _script(tmp_path, "lighthouse", 'echo "Lighthouse could not start"')

    with pytest.raises(AttemptError, match="no results returned") as exc_info:
        _engine(lighthouse).audit("https://example.com", StubHost(), {}, timeout=10)

    assert type(exc_info.value) is AttemptError


# ── ChromeHost.close() ──────────────────────────────────────────


def test_close_terminates_and_removes_profile(tmp_path):
    chrome = _script(tmp_path, "chrome", "exec sleep 30")
    profile = tmp_path / "profile"
    profile.mkdir()
    proc = subprocess.Popen([chrome])

    ChromeHost(proc, 9222, str(profile)).close(grace=5.0)

    assert proc.returncode == -signal.SIGTERM
    assert not profile.exists()


def test_close_kills_a_process_that_ignores_sigterm(tmp_path):
    ready = tmp_path / "ready"
    chrome = _script(tmp_path, "chrome", (
        "trap '' TERM\n"
        'touch "$1"\n'
        "while true; do sleep 0.1; done"
    ))
    profile = tmp_path / "profile"
    profile.mkdir()
    proc = subprocess.Popen([chrome, str(ready)])
    _wait_for(ready)

    ChromeHost(proc, 9222, str(profile)).close(grace=0.5)

    assert proc.returncode == -signal.SIGKILL
    assert not profile.exists()


def test_close_on_exited_process_still_cleans_up(tmp_path):
    chrome = _script(tmp_path, "chrome", "exit 0")
    profile = tmp_path / "profile"
    profile.mkdir()
    proc = subprocess.Popen([chrome])
    proc.wait(timeout=5)

    host = ChromeHost(proc, 9222, str(profile))
    host.close()
    host.close()

    assert not profile.exists()


# ── launch() ────────────────────────────────────────────────────


@pytest.fixture
def started(monkeypatch):
    """Record every process the engine starts."""
    processes = []
    real_popen = subprocess.Popen

    def recording_popen(*args, **kwargs):
        proc = real_popen(*args, **kwargs)
        processes.append(proc)
        return proc

    monkeypatch.setattr(subprocess, "Popen", recording_popen)
    yield processes
    for proc in processes:
        if proc.poll() is None:
            proc.kill()
            proc.wait()


def test_launch_missing_binary_raises(tmp_path):
    engine = _engine("lighthouse", chrome=str(tmp_path / "no-such-chrome"))

    with pytest.raises(EngineLaunchError, match="not found"):
        engine.launch()


def test_launch_reports_early_exit(tmp_path, scratch_dir, started):
    chrome = _script(tmp_path, "chrome", "exit 3")

    with pytest.raises(EngineLaunchError, match="exited early with code 3"):
        _engine("lighthouse", chrome=chrome).launch()

    assert list(scratch_dir.glob("audit-chrome-*")) == []


def test_launch_closes_host_when_devtools_never_answers(tmp_path, scratch_dir, started):
    chrome = _script(tmp_path, "chrome", "exec sleep 30")

    with pytest.raises(EngineLaunchError, match="Timed out"):
        _engine("lighthouse", chrome=chrome, startup_timeout=0.5).launch()

    [proc] = started
    assert proc.poll() is not None
    assert list(scratch_dir.glob("audit-chrome-*")) == []


def test_launch_returns_host_once_devtools_answers(tmp_path, scratch_dir, started, monkeypatch):
    chrome = _script(tmp_path, "chrome", "exec sleep 30")
    monkeypatch.setattr(
        engine_module.httpx, "get",
        lambda url, timeout: httpx.Response(200, json={"Browser": "HeadlessChrome"}),
    )

    host = _engine("lighthouse", chrome=chrome).launch()
    try:
        [proc] = started
        cmd = proc.args
        assert "--headless=new" in cmd
        assert f"--remote-debugging-port={host.port}" in cmd
        assert proc.poll() is None
    finally:
        host.close()

    assert proc.poll() is not None
    assert list(scratch_dir.glob("audit-chrome-*")) == []
