# sigtail/producer.py
"""
tshark as an opaque producer: spawn it, ask whether it still runs, kill it.
"""
from __future__ import annotations

import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Callable, IO, List, Optional, Tuple, Union

from .core import StartupError
from .utils import get_logger

log = get_logger("producer")

MODES = ("pcap", "text")

COMMON_TSHARK_PATHS = [
    r"C:\Program Files\Wireshark\tshark.exe",
    r"C:\Program Files (x86)\Wireshark\tshark.exe",
    r"C:\Wireshark\tshark.exe",
    "/usr/bin/tshark",
    "/usr/local/bin/tshark",
    "/opt/homebrew/bin/tshark",
]


def resolve_tshark_path(explicit: Optional[str] = None) -> Optional[str]:
    """Explicit path, then PATH, then the usual install locations."""
    if explicit:
        if Path(explicit).exists():
            return explicit
        return shutil.which(explicit)
    found = shutil.which("tshark")
    if found:
        return found
    for p in COMMON_TSHARK_PATHS:
        if Path(p).exists():
            return p
    return None


def build_command(binary: str, interface: str, output: Union[str, os.PathLike], mode: str = "pcap",
                  capture_filter: Optional[str] = None, count: Optional[int] = None) -> List[str]:
    """
    pcap: tshark writes classic pcap to ``output`` itself (-w), flushing per packet (-l).
    text: tshark prints a summary line (-P) and hex dump (-x) per packet to stdout,
    which the caller points at ``output``.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode}")
    cmd = [binary, "-i", str(interface), "-n", "-l"]
    if mode == "pcap":
        cmd += ["-F", "pcap", "-w", os.fspath(output)]
    else:
        cmd += ["-P", "-x"]
    if capture_filter:
        cmd += ["-f", capture_filter]
    if count:
        cmd += ["-c", str(int(count))]
    return cmd


class TsharkProducer:
    def __init__(self, binary: str, interface: str, output: Union[str, os.PathLike], mode: str = "pcap",
                 capture_filter: Optional[str] = None, count: Optional[int] = None):
        self.binary = binary
        self.interface = interface
        self.output = Path(output)
        self.mode = mode
        self.cmd = build_command(binary, interface, output, mode, capture_filter, count)
        self._proc: Optional[subprocess.Popen] = None
        self._stdout: Optional[IO[bytes]] = None

    def spawn(self) -> "TsharkProducer":
        log.info(f"[producer] running: {' '.join(self.cmd)}")
        try:
            if self.mode == "text":
                self._stdout = open(self.output, "wb")
                stdout = self._stdout
            else:
                stdout = subprocess.DEVNULL
            # stderr stays attached: tshark reports permission/interface errors there
            self._proc = subprocess.Popen(self.cmd, stdin=subprocess.DEVNULL, stdout=stdout)
        except OSError as e:
            self._close_stdout()
            raise StartupError(f"Failed to run {self.binary}: {e}") from e
        return self

    def is_alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def kill(self) -> None:
        if self.is_alive():
            log.debug(f"[producer] killing pid {self._proc.pid}")
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        if self._proc is None:
            return None
        try:
            return self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            log.warning(f"[producer] pid {self._proc.pid} still running after {timeout}s")
            return None
        finally:
            if self._proc.poll() is not None:
                self._close_stdout()

    def _close_stdout(self) -> None:
        if self._stdout is not None:
            self._stdout.close()
            self._stdout = None


# ----------------------------
# Interface listing (tshark -D)
# ----------------------------

_IFACE_LINE = re.compile(r"^\s*(\d+)\.\s+(\S+)(?:\s+\((.*)\))?\s*$")


def parse_interfaces(text: str) -> List[Tuple[str, str, str]]:
    """'1. eth0 (Ethernet)' lines -> [(index, name, description)]."""
    out = []
    for line in text.splitlines():
        m = _IFACE_LINE.match(line)
        if m:
            out.append((m.group(1), m.group(2), m.group(3) or ""))
    return out


def list_interfaces(binary: str, timeout: float = 15.0) -> List[Tuple[str, str, str]]:
    try:
        res = subprocess.run([binary, "-D"], capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise StartupError(f"Failed to list interfaces with {binary}: {e}") from e
    if res.returncode != 0:
        raise StartupError(f"{binary} -D failed: {res.stderr.strip()}")
    return parse_interfaces(res.stdout)


def choose_interface(interfaces: List[Tuple[str, str, str]],
                     prompt: Callable[[str], str] = input,
                     out: Callable[[str], None] = print) -> str:
    """Print the list and ask for a number; returns the tshark interface index."""
    if not interfaces:
        raise StartupError("No capture interfaces available")
    for idx, name, desc in interfaces:
        out(f"  {idx}. {name}" + (f" ({desc})" if desc else ""))
    valid = {idx for idx, _n, _d in interfaces}
    while True:
        answer = prompt("Select interface number: ").strip()
        if answer in valid:
            return answer
        out(f"Invalid choice: {answer!r}")
