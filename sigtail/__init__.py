# sigtail/__init__.py
"""
Live signature scanning over a capture that tshark is still writing.

- stream: tail the growing capture file (text lines or pcap records)
- formats / stages: frame boundaries, hex extraction, frame reassembly
- decode: printable projection of a frame's bytes
- match: signatures (YAML config) and the per-frame scanner
- io: result log and pcap of matching packets
- pipeline: lifecycle of one session (start, attach, run, stop, cleanup)
- producer: tshark resolution and process control
"""

__version__ = "0.1.0"
