from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import os
import re
import shutil
import subprocess

from quotaprobe.errors import CLINotFound

logger = logging.getLogger(__name__)

CommandRunner = Callable[[list[str]], str]

LISTEN_RE = re.compile(r":(\d+) \(LISTEN\)")
SS_LINE_RE = re.compile(r"\s\S*:(\d+)\s")
SYSTEM_TOOL_DIRS = ("/usr/sbin", "/usr/bin", "/sbin", "/bin")


@dataclass(frozen=True)
class ProcessSignature:
    """Matches a binary name plus an argument fragment naming the product."""

    name_pattern: str
    argument_pattern: str
    token_flag: str = "--csrf_token"
    port_flag: str = "--extension_server_port"
    label: str = "process"

    def matches(self, command_line: str) -> bool:
        parts = command_line.split(None, 1)
        if not parts:
            return False
        executable = parts[0].rsplit("/", 1)[-1]
        if not re.search(self.name_pattern, executable):
            return False
        return re.search(self.argument_pattern, command_line, re.IGNORECASE) is not None


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    csrf_token: str
    extension_port: int | None = None
    command_line: str = ""


def run_command(argv: list[str]) -> str:
    executable = shutil.which(argv[0], path=os.pathsep.join([os.environ.get("PATH", ""), *SYSTEM_TOOL_DIRS]))
    if executable is None:
        logger.debug("%s is not installed", argv[0])
        return ""
    try:
        proc = subprocess.run([executable, *argv[1:]], check=False, capture_output=True, text=True, timeout=5)
    except subprocess.TimeoutExpired:
        logger.warning("%s timed out", argv[0])
        return ""
    return proc.stdout


def _flag_value(command_line: str, flag: str, value_pattern: str = r"\S+") -> str | None:
    m = re.search(rf"{re.escape(flag)}(?:=|\s+)({value_pattern})", command_line)
    return m.group(1) if m else None


def parse_process_listing(output: str) -> list[tuple[int, str]]:
    rows: list[tuple[int, str]] = []
    for line in output.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2 or not parts[0].isdigit():
            continue
        rows.append((int(parts[0]), parts[1]))
    return rows


def parse_lsof_ports(output: str) -> set[int]:
    return {int(m.group(1)) for m in LISTEN_RE.finditer(output)}


def parse_ss_ports(output: str, pid: int) -> set[int]:
    ports: set[int] = set()
    marker = f"pid={pid},"
    for line in output.splitlines():
        if marker not in line:
            continue
        m = SS_LINE_RE.search(line)
        if m:
            ports.add(int(m.group(1)))
    return ports


class LocalProcessDiscovery:
    def __init__(self, command_runner: CommandRunner = run_command) -> None:
        self.command_runner = command_runner

    def detect_process(self, signature: ProcessSignature) -> ProcessInfo:
        listing = self.command_runner(["ps", "-A", "-o", "pid=,command="])
        for pid, command_line in parse_process_listing(listing):
            if not signature.matches(command_line):
                continue
            token = _flag_value(command_line, signature.token_flag)
            if not token:
                logger.debug("pid %d matches %s but carries no %s", pid, signature.label, signature.token_flag)
                continue
            port = _flag_value(command_line, signature.port_flag, r"\d+")
            logger.debug("found %s at pid %d", signature.label, pid)
            return ProcessInfo(
                pid=pid,
                csrf_token=token,
                extension_port=int(port) if port else None,
                command_line=command_line,
            )
        raise CLINotFound(signature.label)

    def discover_ports(self, pid: int) -> list[int]:
        ports = parse_lsof_ports(
            self.command_runner(["lsof", "-nP", "-iTCP", "-sTCP:LISTEN", "-a", "-p", str(pid)])
        )
        if not ports:
            ports = parse_ss_ports(self.command_runner(["ss", "-ltnpH"]), pid)
        if not ports:
            raise CLINotFound(f"listening port for pid {pid}")
        return sorted(ports)
