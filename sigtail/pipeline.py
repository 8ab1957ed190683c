# sigtail/pipeline.py
from __future__ import annotations

import enum
import signal
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from .core import Frame, MatchRecord, RunSummary, Stage, StartupError
from .decode import PLACEHOLDER, decode_frame
from .formats import FrameFormat, HexDumpFormat
from .io import PcapMatchSink, ResultSink
from .match import SignatureScanner
from .readiness import Readiness, await_ready
from .stages import FrameReassembler, PacketFramer
from .stream import PENDING, TERMINATED, GrowingLineReader, PcapRecordReader
from .utils import get_logger, remove_file

log = get_logger("pipeline")


class Phase(enum.Enum):
    STARTING = "starting"
    ATTACHING = "attaching"
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class Producer(Protocol):
    def spawn(self): ...
    def is_alive(self) -> bool: ...
    def kill(self) -> None: ...
    def wait(self, timeout: Optional[float] = None) -> Optional[int]: ...


@dataclass
class Settings:
    capture_path: Path
    mode: str = "pcap"              # pcap | text
    ready_timeout: float = 10.0
    ready_poll: float = 0.1
    backoff: float = 0.01           # sleep on PENDING
    release_delay: float = 0.5      # after kill, before deleting the artifact
    kill_wait: float = 5.0
    dump_frames: bool = False
    placeholder: str = PLACEHOLDER
    progress_every: int = 1000


def build_reader(mode: str, path, is_alive):
    if mode == "pcap":
        return PcapRecordReader(path, is_alive)
    if mode == "text":
        return GrowingLineReader(path, is_alive)
    raise ValueError(f"Unknown mode: {mode}")


def build_framer(mode: str, fmt: Optional[FrameFormat] = None) -> Stage:
    if mode == "pcap":
        return PacketFramer()
    return FrameReassembler(fmt=fmt or HexDumpFormat())


class Coordinator:
    """
    Runs one capture session: STARTING -> ATTACHING -> RUNNING -> STOPPING -> TERMINATED.

    The stop event is the only state shared with the signal handler. It is
    set once and never cleared; every sleep in here is short and bounded so
    the loop notices it on the next iteration. cleanup() may run twice
    (handler and main path); deleting a missing artifact is a no-op.
    """

    def __init__(
        self,
        producer: Producer,
        scanner: SignatureScanner,
        settings: Settings,
        sink: Optional[ResultSink] = None,
        pcap_sink: Optional[PcapMatchSink] = None,
        on_match: Optional[Callable[[MatchRecord], None]] = None,
        fmt: Optional[FrameFormat] = None,
        stop: Optional[threading.Event] = None,
    ):
        self.producer = producer
        self.scanner = scanner
        self.settings = settings
        self.sink = sink
        self.pcap_sink = pcap_sink
        self.on_match = on_match
        self.stop = stop or threading.Event()
        self.phase = Phase.STARTING
        self.summary = RunSummary()
        self.framer = build_framer(settings.mode, fmt)
        self.reader = None
        self._spawned = False

    @property
    def capture_path(self) -> Path:
        return self.settings.capture_path

    def request_stop(self) -> None:
        self.stop.set()

    def cleanup(self) -> None:
        if remove_file(self.capture_path):
            log.debug(f"[cleanup] removed {self.capture_path}")

    def install_signal_handlers(self) -> None:
        """Ctrl+C / SIGTERM -> stop flag + best-effort artifact removal. Main thread only."""
        def _handler(signum, _frame):
            self.request_stop()
            log.info(f"[stop] signal {signum} received, stopping...")
            try:
                self.cleanup()
            except OSError as e:
                # still held open by the producer; removed again after the kill
                log.debug(f"[cleanup] deferred: {e}")

        signal.signal(signal.SIGINT, _handler)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, _handler)

    # ---- phases ----

    def run(self) -> RunSummary:
        try:
            if self._start():
                self._attach()
                self._loop()
        finally:
            self._shutdown()
        return self.summary

    def _start(self) -> bool:
        self.phase = Phase.STARTING
        self.cleanup()  # stale artifact from an earlier run
        self.producer.spawn()
        self._spawned = True
        log.info(f"[ready] waiting for producer output at {self.capture_path}")
        state = await_ready(self.capture_path, timeout=self.settings.ready_timeout,
                            poll_interval=self.settings.ready_poll, stop=self.stop)
        if state is Readiness.CANCELLED:
            self.summary.reason = "cancelled"
            return False
        if state is Readiness.TIMED_OUT:
            raise StartupError("Producer failed to create capture file. Check permissions/interface.")
        return True

    def _attach(self) -> None:
        self.phase = Phase.ATTACHING
        try:
            self.reader = build_reader(self.settings.mode, self.capture_path, self.producer.is_alive).open()
        except (OSError, ValueError) as e:
            raise StartupError(f"Cannot attach to {self.capture_path}: {e}") from e
        log.info("[attach] tunnel active, scanning packets...")

    def _loop(self) -> None:
        self.phase = Phase.RUNNING
        backoff = self.settings.backoff
        try:
            while not self.stop.is_set():
                item = self.reader.read_next()
                if item is PENDING:
                    time.sleep(backoff)
                    continue
                if item is TERMINATED:
                    self.summary.reason = "producer-exited"
                    log.info("[stop] producer exited")
                    break
                for frame in self.framer.feed(item):
                    self._handle(frame)
            else:
                self.summary.reason = "cancelled"
        except KeyboardInterrupt:
            self.request_stop()
            self.summary.reason = "cancelled"
        for frame in self.framer.flush():
            self._handle(frame)

    def _handle(self, frame: Frame) -> None:
        decoded = decode_frame(frame, self.settings.placeholder)
        self.summary.frames += 1
        if self.settings.dump_frames and self.sink is not None:
            self.sink.record_frame(decoded)

        hits = self.scanner.scan(decoded)
        for hit in sorted(hits, key=lambda h: (h.signature, h.variant)):
            rec = MatchRecord(seq=decoded.seq, hit=hit, frame=decoded)
            self.summary.matches += 1
            if self.on_match is not None:
                self.on_match(rec)
            if self.sink is not None:
                self.sink.record(rec)
        if hits and self.pcap_sink is not None:
            self.pcap_sink.writepkt(decoded, linktype=getattr(self.reader, "linktype", None))

        every = self.settings.progress_every
        if every and self.summary.frames % every == 0:
            log.info(f"[progress] frames={self.summary.frames} matches={self.summary.matches}")

    def _shutdown(self) -> None:
        self.phase = Phase.STOPPING
        if self._spawned:
            self.producer.kill()
            self.producer.wait(timeout=self.settings.kill_wait)
            # give the producer time to release the capture file
            time.sleep(self.settings.release_delay)
        if self.reader is not None:
            self.reader.close()
        for s in (self.sink, self.pcap_sink):
            if s is not None:
                s.close()
        self.cleanup()
        self.summary.discarded = getattr(self.framer, "discarded", 0)
        self.phase = Phase.TERMINATED
        log.info(f"[stop] finished ({self.summary.reason or 'startup-failed'}): "
                 f"frames={self.summary.frames} matches={self.summary.matches}")
