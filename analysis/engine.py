"""
Audit engines — the black box that loads a page and scores it.

Same Strategy pattern as the job handlers:
- AuditEngine = interface (launch a browser host, audit a URL against it)
- ChromeLighthouseEngine = production implementation
- tests plug in fakes

The runner owns the lifecycle: it launches one BrowserHost per attempt and
always closes it, success or failure. Engines never share a host between
attempts.

ChromeLighthouseEngine:
    1. starts headless Chrome with a DevTools port (subprocess.Popen)
    2. waits for the port to answer /json/version
    3. runs the `lighthouse` CLI against that port, JSON on stdout
    4. close() terminates Chrome, then kills it after a grace period
"""

import gc
import json
import logging
import os
import shutil
import socket
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod

import httpx

from config.settings import settings
from analysis.errors import (
    AttemptError,
    AttemptTimeoutError,
    EngineLaunchError,
    ProtocolError,
    TargetClosedError,
)

logger = logging.getLogger(__name__)

CHROME_FLAGS = [
    "--headless=new",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-translate",
    "--no-first-run",
    "--no-zygote",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI,site-per-process,VizDisplayCompositor",
    "--disable-ipc-flooding-protection",
    "--disable-background-networking",
    "--disable-client-side-phishing-detection",
    "--disable-sync",
    "--metrics-recording-only",
    "--disable-component-extensions-with-background-pages",
]


class BrowserHost(ABC):
    """A running browser process the engine can audit against."""

    @property
    @abstractmethod
    def port(self) -> int:
        ...

    @abstractmethod
    def close(self) -> None:
        """Tear the process down. Must be safe to call on an already-dead process."""
        ...


class AuditEngine(ABC):

    @abstractmethod
    def launch(self) -> BrowserHost:
        """
        Start a fresh browser host.

        Raises:
            EngineLaunchError if the process cannot be started.
        """
        ...

    @abstractmethod
    def audit(self, url: str, host: BrowserHost, config: dict, timeout: float) -> dict:
        """
        Run one audit and return the engine's raw JSON report.

        Raises:
            AttemptError (or a subclass) for any failure of this attempt.
        """
        ...

    def release_measurements(self) -> None:
        """Drop process-wide timing/measurement state left behind by an attempt."""
        gc.collect()


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class ChromeHost(BrowserHost):

    def __init__(self, proc: subprocess.Popen, port: int, profile_dir: str):
        self._proc = proc
        self._port = port
        self._profile_dir = profile_dir

    @property
    def port(self) -> int:
        return self._port

    def close(self, grace: float = 5.0) -> None:
        try:
            if self._proc.poll() is None:
                self._proc.terminate()
                try:
                    self._proc.wait(timeout=grace)
                except subprocess.TimeoutExpired:
                    logger.warning(f"Chrome (pid {self._proc.pid}) ignored SIGTERM, killing")
                    self._proc.kill()
                    self._proc.wait(timeout=grace)
        finally:
            shutil.rmtree(self._profile_dir, ignore_errors=True)


class ChromeLighthouseEngine(AuditEngine):

    def __init__(
        self,
        chrome_path: str = settings.CHROME_PATH,
        lighthouse_path: str = settings.LIGHTHOUSE_PATH,
        startup_timeout: float = 30.0,
    ):
        self._chrome_path = chrome_path
        self._lighthouse_path = lighthouse_path
        self._startup_timeout = startup_timeout

    def launch(self) -> BrowserHost:
        if shutil.which(self._chrome_path) is None:
            raise EngineLaunchError(f"'{self._chrome_path}' not found on PATH")

        port = _free_port()
        profile_dir = tempfile.mkdtemp(prefix="audit-chrome-")
        cmd = [
            self._chrome_path,
            *CHROME_FLAGS,
            f"--remote-debugging-port={port}",
            f"--user-data-dir={profile_dir}",
            "about:blank",
        ]
        logger.debug(f"Starting Chrome on port {port}")
        proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        host = ChromeHost(proc, port, profile_dir)

        try:
            self._wait_for_devtools(proc, port)
        except Exception:
            host.close()
            raise
        return host

    def _wait_for_devtools(self, proc: subprocess.Popen, port: int) -> None:
        deadline = time.monotonic() + self._startup_timeout
        while time.monotonic() < deadline:
            if proc.poll() is not None:
                raise EngineLaunchError(f"Chrome exited early with code {proc.returncode}")
            try:
                response = httpx.get(f"http://127.0.0.1:{port}/json/version", timeout=1.0)
                if response.status_code == 200:
                    return
            except httpx.HTTPError:
                pass
            time.sleep(0.25)
        raise EngineLaunchError(f"Timed out waiting for Chrome DevTools on port {port}")

    def audit(self, url: str, host: BrowserHost, config: dict, timeout: float) -> dict:
        fd, config_path = tempfile.mkstemp(prefix="audit-config-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(config, f)

            cmd = [
                self._lighthouse_path,
                url,
                f"--port={host.port}",
                f"--config-path={config_path}",
                "--output=json",
                "--quiet",
            ]
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
            except subprocess.TimeoutExpired as exc:
                raise AttemptTimeoutError(f"Audit exceeded {timeout:.0f}s") from exc
        finally:
            os.unlink(config_path)

        if proc.returncode != 0:
            raise _attempt_error(proc.stderr or "")

        try:
            return json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise AttemptError("Lighthouse analysis failed - no results returned") from exc


def _attempt_error(stderr: str) -> AttemptError:
    tail = stderr.strip()[-500:]
    if "TargetCloseError" in stderr or "Target closed" in stderr:
        return TargetClosedError(tail)
    if "PROTOCOL_ERROR" in stderr or "ProtocolError" in stderr:
        return ProtocolError(tail)
    return AttemptError(tail or "Lighthouse exited with an error")
