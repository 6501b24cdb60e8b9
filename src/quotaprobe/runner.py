"""Drive interactive CLIs through a pseudo-terminal.

Many assistant CLIs refuse to print usage data unless stdin is a terminal, or
stop to ask for confirmation first. ``InteractiveRunner`` launches the binary on
the slave side of a PTY, types one line of input, answers registered prompts
and returns whatever the session printed before it exited or timed out.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import errno
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
import threading
import time

from quotaprobe.config import SearchConfig
from quotaprobe.errors import BinaryNotFound, LaunchFailed, TimedOut
from quotaprobe.locator import ProcessLocator, is_executable_file

logger = logging.getLogger(__name__)

TERMINAL_ROWS = 50
TERMINAL_COLS = 160
POLL_INTERVAL = 0.06
KILL_GRACE_SECONDS = 2.0
READ_CHUNK = 8192


@dataclass
class RunOptions:
    timeout: float = 20.0
    working_directory: str | None = None
    arguments: list[str] = field(default_factory=list)
    auto_responses: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RunResult:
    output: str
    exit_code: int
    fired_triggers: tuple[str, ...] = ()


class PtySession:
    """One child process bound to one PTY pair.

    ``close`` releases everything the session holds and is safe to call from
    any exit path, any number of times.
    """

    def __init__(self, master_fd: int, slave_fd: int) -> None:
        self.master_fd: int | None = master_fd
        self.slave_fd: int | None = slave_fd
        self.process: subprocess.Popen | None = None
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, rows: int = TERMINAL_ROWS, cols: int = TERMINAL_COLS) -> PtySession:
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as exc:
            raise LaunchFailed(f"openpty failed: {exc}") from exc
        session = cls(master_fd, slave_fd)
        try:
            fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))
            os.set_blocking(master_fd, False)
        except OSError as exc:
            session.close()
            raise LaunchFailed(f"could not configure pty: {exc}") from exc
        return session

    def __enter__(self) -> PtySession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def spawn(self, argv: list[str], cwd: str | None, env: dict[str, str]) -> None:
        try:
            self.process = subprocess.Popen(
                argv,
                stdin=self.slave_fd,
                stdout=self.slave_fd,
                stderr=self.slave_fd,
                cwd=cwd,
                env=env,
                close_fds=True,
                start_new_session=True,
            )
        except OSError as exc:
            raise LaunchFailed(str(exc)) from exc
        # The child holds its own copy; reads on the master end with EIO once it exits.
        self._close_slave()
        logger.debug("spawned %s (pid %d)", argv[0], self.process.pid)

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def exit_code(self) -> int:
        if self.process is None:
            return -1
        code = self.process.poll()
        return -1 if code is None else code

    def send(self, data: bytes, deadline: float | None = None) -> None:
        """Write all of ``data``, waiting while the child leaves its input queue full."""
        if self.master_fd is None:
            raise LaunchFailed("pty already closed")
        view = memoryview(data)
        while view:
            try:
                written = os.write(self.master_fd, view)
            except BlockingIOError:
                if deadline is not None and time.monotonic() >= deadline:
                    raise TimedOut("child stopped reading its input") from None
                time.sleep(POLL_INTERVAL)
                continue
            view = view[written:]

    def read_available(self) -> bytes:
        if self.master_fd is None:
            return b""
        chunks: list[bytes] = []
        while True:
            try:
                chunk = os.read(self.master_fd, READ_CHUNK)
            except BlockingIOError:
                break
            except OSError as exc:
                if exc.errno == errno.EIO:
                    break
                raise
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._close_slave()
        if self.master_fd is not None:
            try:
                os.close(self.master_fd)
            except OSError:
                logger.debug("master fd already closed")
            self.master_fd = None

        process = self.process
        if process is None:
            return
        if process.poll() is None:
            self._signal(process, signal.SIGTERM)
            try:
                process.wait(timeout=KILL_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                logger.debug("pid %d ignored SIGTERM; killing", process.pid)
                self._signal(process, signal.SIGKILL)
        process.wait()

    def _close_slave(self) -> None:
        if self.slave_fd is not None:
            os.close(self.slave_fd)
            self.slave_fd = None

    @staticmethod
    def _signal(process: subprocess.Popen, sig: int) -> None:
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            return
        except PermissionError:
            process.send_signal(sig)


class InteractiveRunner:
    """Runs a CLI command as if a person typed it into a terminal."""

    def __init__(
        self,
        search: SearchConfig,
        settle_seconds: float = 0.4,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.search = search
        self.locator = ProcessLocator(search)
        self.settle_seconds = settle_seconds
        self.environ = dict(os.environ if environ is None else environ)

    def run(self, binary: str, input_text: str, options: RunOptions | None = None) -> RunResult:
        options = options or RunOptions()
        resolved = self.resolve_binary(binary)

        with PtySession.open() as session:
            session.spawn([resolved, *options.arguments], options.working_directory, self.environment())
            deadline = time.monotonic() + options.timeout
            time.sleep(self.settle_seconds)
            self._send_input(session, input_text, deadline)
            buffer, fired = self._read_with_auto_responses(session, options, deadline)
            exit_code = session.exit_code()

        try:
            text = buffer.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TimedOut("output was not valid UTF-8") from exc
        if not text:
            raise TimedOut()
        return RunResult(output=text, exit_code=exit_code, fired_triggers=tuple(fired))

    def resolve_binary(self, binary: str) -> str:
        if is_executable_file(binary):
            return binary
        found = self.locator.which(binary)
        if found is None:
            raise BinaryNotFound(binary)
        return found

    def environment(self) -> dict[str, str]:
        env = dict(self.environ)
        env["PATH"] = self.search.effective_path()
        env.setdefault("HOME", self.search.home)
        env.setdefault("TERM", "xterm-256color")
        env.setdefault("COLORTERM", "truecolor")
        env.setdefault("LANG", "en_US.UTF-8")
        env.setdefault("CI", "0")
        return env

    @staticmethod
    def _send_input(session: PtySession, input_text: str, deadline: float) -> None:
        trimmed = input_text.strip()
        if not trimmed:
            return
        try:
            session.send((trimmed + "\r").encode("utf-8"), deadline)
        except OSError as exc:
            raise LaunchFailed(f"could not write input: {exc}") from exc

    @staticmethod
    def _read_with_auto_responses(
        session: PtySession, options: RunOptions, deadline: float
    ) -> tuple[bytes, list[str]]:
        buffer = bytearray()
        needles = [(k, k.encode("utf-8"), v.encode("utf-8")) for k, v in options.auto_responses.items() if k]
        fired: list[str] = []

        while time.monotonic() < deadline:
            buffer += session.read_available()

            # Scan the whole buffer so a prompt split across reads still matches.
            for trigger, needle, reply in needles:
                if trigger in fired or needle not in buffer:
                    continue
                fired.append(trigger)
                try:
                    session.send(reply, deadline)
                except OSError as exc:
                    logger.debug("auto-response for %r not delivered: %s", trigger, exc)

            if not session.is_running():
                break
            time.sleep(POLL_INTERVAL)

        buffer += session.read_available()
        return bytes(buffer), fired
