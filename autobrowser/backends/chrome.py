"""Chrome process launcher with DevTools readiness detection."""

import asyncio
import os
import random
import re
import shutil
import sys
import tempfile
from pathlib import Path

from autobrowser.errors import BackendUnavailableError
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

DEVTOOLS_URL_PATTERN = re.compile(r"DevTools listening on (ws://\S+)")
DEFAULT_READY_TIMEOUT = 10.0

_BROWSER_PATHS = {
    "darwin": [
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
    ],
    "win32": [
        r"C:\Program Files\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    ],
}
_BROWSER_NAMES = ["google-chrome", "google-chrome-stable", "chromium", "chromium-browser", "chrome"]


def find_chrome() -> str | None:
    """Locate a Chrome executable, honouring MOCK_CHROME_PATH and CHROME_PATH."""
    for variable in ("MOCK_CHROME_PATH", "CHROME_PATH"):
        path = os.getenv(variable)
        if path:
            return path

    for path in _BROWSER_PATHS.get(sys.platform, []):
        if os.path.isfile(path):
            return path

    for name in _BROWSER_NAMES:
        path = shutil.which(name)
        if path:
            return path
    return None


class ChromeLauncher:
    """Starts Chrome with remote debugging and waits for its WebSocket endpoint.

    Chrome announces readiness on stderr. A background task drains stderr
    for the lifetime of the process and resolves a single-use future with
    the first DevTools URL it sees; ``start`` waits on that future with a
    fixed timeout.
    """

    def __init__(
        self,
        executable: str | None = None,
        port: int | None = None,
        user_data_dir: str | Path | None = None,
        extra_args: list[str] | None = None,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
    ):
        self.executable = executable
        self.port = port or random.randint(9222, 9321)
        self.user_data_dir = Path(user_data_dir or Path(tempfile.gettempdir()) / "chrome-remote-profile")
        self.extra_args = extra_args or []
        self.ready_timeout = ready_timeout

        self.process: asyncio.subprocess.Process | None = None
        self.ws_url: str | None = None
        self._stderr_task: asyncio.Task | None = None

    def build_args(self) -> list[str]:
        return [
            f"--remote-debugging-port={self.port}",
            f"--user-data-dir={self.user_data_dir}",
            "--no-first-run",
            "--no-default-browser-check",
            *self.extra_args,
        ]

    async def start(self) -> str:
        """Launch Chrome and return its DevTools WebSocket URL.

        Raises:
            BackendUnavailableError: No executable, launch failure, or no
                readiness signal within the timeout
        """
        executable = self.executable or find_chrome()
        if not executable:
            raise BackendUnavailableError("No Chrome executable found; set CHROME_PATH")

        try:
            self.process = await asyncio.create_subprocess_exec(
                executable,
                *self.build_args(),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BackendUnavailableError(f"Failed to launch Chrome {executable}: {e}") from e

        logger.info(f"Launched Chrome (pid {self.process.pid}) on debugging port {self.port}")

        ready: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._stderr_task = asyncio.create_task(self._drain_stderr(self.process.stderr, ready))

        try:
            self.ws_url = await asyncio.wait_for(ready, timeout=self.ready_timeout)
        except TimeoutError:
            await self.stop()
            raise BackendUnavailableError(
                f"timeout waiting for Chrome WebSocket URL after {self.ready_timeout:.0f}s"
            ) from None
        except BackendUnavailableError:
            await self.stop()
            raise

        logger.info(f"Chrome DevTools listening on {self.ws_url}")
        return self.ws_url

    async def _drain_stderr(self, stream: asyncio.StreamReader, ready: asyncio.Future[str]) -> None:
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            logger.debug(f"chrome: {text}")
            if not ready.done():
                match = DEVTOOLS_URL_PATTERN.search(text)
                if match:
                    ready.set_result(match.group(1))

        if not ready.done():
            ready.set_exception(BackendUnavailableError("Chrome exited before announcing its DevTools URL"))

    async def stop(self) -> None:
        """Terminate Chrome and the stderr listener."""
        if self.process is not None and self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                # Exited on its own but not reaped yet
                pass
            try:
                await asyncio.wait_for(self.process.wait(), timeout=5.0)
            except TimeoutError:
                logger.warning("Chrome did not exit after terminate, killing it")
                self.process.kill()
                await self.process.wait()
            logger.info("Chrome process stopped")

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass
            self._stderr_task = None
