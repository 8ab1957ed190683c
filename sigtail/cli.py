# sigtail/cli.py
import argparse
import sys

import yaml

from .core import MatchRecord, StartupError
from .io import PcapMatchSink, ResultSink
from .match import SignatureScanner, build_signatures
from .pipeline import Coordinator, Settings
from .producer import MODES, TsharkProducer, choose_interface, list_interfaces, resolve_tshark_path
from .utils import setup, temp_capture_path


def print_match(rec: MatchRecord, out=None) -> None:
    out = out or sys.stdout
    out.write(f"MATCH_FOUND_PACKET_{rec.seq}\n")
    out.write(f"[{rec.hit.signature}/{rec.hit.variant}]"
              + (f" {rec.frame.summary}" if rec.frame.summary else "") + "\n")
    out.write(rec.frame.text + "\n")
    out.write("--END_MATCH--\n\n")
    out.flush()


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sigtail",
                                description="Scan a live tshark capture for byte signatures")
    p.add_argument("-i", "--interface", default="1", help="tshark interface name or index (default: 1)")
    p.add_argument("-o", "--output", help="append matches to this text log")
    p.add_argument("--choose", action="store_true", help="pick the interface interactively (tshark -D)")
    p.add_argument("--mode", choices=MODES, default="pcap",
                   help="pcap: tail tshark's pcap file; text: tail its hex dump output "
                        "(text mode writes nothing until the first packet, so raise --ready-timeout "
                        "on quiet interfaces)")
    p.add_argument("--signatures", help="YAML file with a 'signatures' list")
    p.add_argument("--text", action="append", default=[],
                   help="ad-hoc signature string (narrow + wide encodings), repeatable")
    p.add_argument("--hex", action="append", default=[], help="ad-hoc raw hex signature, repeatable")
    p.add_argument("--dump-frames", action="store_true", help="also log every decoded packet to --output")
    p.add_argument("--pcap-out", help="save matching packets to this pcap (pcap mode only)")
    p.add_argument("--tshark", help="path to the tshark binary")
    p.add_argument("-f", "--filter", dest="capture_filter", help="capture filter (BPF)")
    p.add_argument("-c", "--count", type=int, help="stop after N packets")
    p.add_argument("--ready-timeout", type=float, default=10.0,
                   help="seconds to wait for tshark's first output (default: 10); in text mode "
                        "this is the wait for the first captured packet")
    p.add_argument("--log-dir", default=None, help="also write rotating log files here")
    p.add_argument("--log-level", default="INFO")
    p.add_argument("--verbose", action="store_true")
    return p


def main(argv=None) -> int:
    args = build_argparser().parse_args(argv)
    log = setup(log_dir=args.log_dir, level="DEBUG" if args.verbose else args.log_level)

    try:
        signatures = build_signatures(args.signatures, texts=args.text, hexes=args.hex)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"[!] Invalid signature config: {e}", file=sys.stderr)
        return 1

    binary = resolve_tshark_path(args.tshark)
    if binary is None:
        print("[!] tshark not found. Install Wireshark/tshark or pass --tshark.", file=sys.stderr)
        return 1

    interface = args.interface
    if args.choose:
        try:
            interface = choose_interface(list_interfaces(binary))
        except (StartupError, EOFError) as e:
            print(f"[!] {str(e) or 'no interface selected'}", file=sys.stderr)
            return 1

    capture_path = temp_capture_path(".pcap" if args.mode == "pcap" else ".txt")
    print(f"[*] Interface: {interface}", file=sys.stderr)
    print(f"[*] Cache File: {capture_path}", file=sys.stderr)
    for sig in signatures:
        log.info(f"[signature] {sig.name}: " + ", ".join(f"{lbl}={d}" for lbl, d in sig.variants))

    sink = None
    if args.output:
        sink = ResultSink(args.output)
        log.info(f"[sink] appending results to {args.output} (best-effort: write errors are logged, not fatal)")
    pcap_sink = None
    if args.pcap_out:
        if args.mode != "pcap":
            log.warning("[sink] --pcap-out needs --mode pcap; ignored")
        else:
            pcap_sink = PcapMatchSink(args.pcap_out)

    producer = TsharkProducer(binary, interface, capture_path, mode=args.mode,
                              capture_filter=args.capture_filter, count=args.count)
    settings = Settings(capture_path=capture_path, mode=args.mode,
                        ready_timeout=args.ready_timeout, dump_frames=args.dump_frames)
    coord = Coordinator(producer, SignatureScanner(signatures), settings,
                        sink=sink, pcap_sink=pcap_sink, on_match=print_match)
    coord.install_signal_handlers()

    try:
        summary = coord.run()
    except StartupError as e:
        print(f"[!] Error: {e}", file=sys.stderr)
        return 1

    print(f"[*] Finished. Scanned {summary.frames} packets, {summary.matches} matches.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
