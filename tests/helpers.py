import io
import struct
import threading
import time

import dpkt


def build_udp_frame(payload: bytes, src=b'\x0a\x00\x00\x01', dst=b'\x0a\x00\x00\x02',
                    sport=40000, dport=53) -> bytes:
    """Ethernet + IPv4 + UDP, checksums left at zero."""
    udp = struct.pack('!HHHH', sport, dport, 8 + len(payload), 0) + payload
    ip = struct.pack('!BBHHHBBH4s4s', (4 << 4) | 5, 0, 20 + len(udp), 0, 0, 64, 17, 0, src, dst) + udp
    eth = b'\x11' * 6 + b'\x22' * 6 + b'\x08\x00'
    return eth + ip


def build_pcap(frames, linktype=1) -> bytes:
    bio = io.BytesIO()
    w = dpkt.pcap.Writer(bio, snaplen=65535, linktype=linktype)
    for i, f in enumerate(frames):
        w.writepkt(f, ts=1700000000.0 + i)
    return bio.getvalue()


class FakeProducer:
    """
    Writes ``chunks`` to ``path`` from a background thread, then exits
    (unless linger=True, in which case it stays alive until killed).
    """
    def __init__(self, path, chunks=(), delay=0.005, linger=False, write=True):
        self.path = path
        self.chunks = list(chunks)
        self.delay = delay
        self.linger = linger
        self.write = write
        self.spawned = False
        self.killed = False
        self._exit = threading.Event()
        self._thread = None

    def _run(self):
        with open(self.path, 'ab') as f:
            for c in self.chunks:
                if self._exit.is_set():
                    return
                f.write(c if isinstance(c, bytes) else c.encode())
                f.flush()
                time.sleep(self.delay)
        if not self.linger:
            self._exit.set()

    def spawn(self):
        self.spawned = True
        if self.write:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        return self

    def is_alive(self):
        return self.spawned and not self._exit.is_set()

    def kill(self):
        self.killed = True
        self._exit.set()

    def wait(self, timeout=None):
        if self._thread is not None:
            self._thread.join(timeout)
        return 0
