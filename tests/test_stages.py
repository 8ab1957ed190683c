import unittest

from sigtail.formats import HexDumpFormat
from sigtail.stages import FrameReassembler, PacketFramer, parse_l3_addrs
from sigtail.stream import PcapRecord

from helpers import build_udp_frame


def feed_all(r, lines):
    out = []
    for line in lines:
        out.extend(r.feed(line))
    return out


class TestHexDumpFormat(unittest.TestCase):
    def setUp(self):
        self.fmt = HexDumpFormat()

    def test_short_prefix_single_space(self):
        self.assertEqual(self.fmt.extract_hex('00e0 48 65 6c 6c 6f'), '48656c6c6f')

    def test_full_tshark_line_stops_before_ascii(self):
        line = '0000  48 65 6c 6c 6f 20 57 6f 72 6c 64 0a 00 00 00 00   Hello World.....'
        self.assertEqual(self.fmt.extract_hex(line), '48656c6c6f20576f726c640a00000000')

    def test_short_line_with_hex_looking_ascii(self):
        self.assertEqual(self.fmt.extract_hex('0020  de ad   de ad'), 'dead')

    def test_uppercase_normalized(self):
        self.assertEqual(self.fmt.extract_hex('0010  AB CD'), 'abcd')

    def test_non_dump_lines(self):
        self.assertEqual(self.fmt.extract_hex('Frame 1: 74 bytes on wire'), '')
        self.assertEqual(self.fmt.extract_hex('  0000 41 42'), '')
        self.assertEqual(self.fmt.extract_hex('0000'), '')

    def test_boundaries(self):
        self.assertTrue(self.fmt.is_boundary(''))
        self.assertTrue(self.fmt.is_boundary('   '))
        self.assertTrue(self.fmt.is_boundary('    1 0.000000000 10.0.0.1 -> 10.0.0.2 UDP 60'))
        self.assertTrue(self.fmt.is_boundary('1234 12.500000 10.0.0.1 -> 10.0.0.2 TCP 60'))
        self.assertFalse(self.fmt.is_boundary('0000  48 65 6c 6c 6f'))

    def test_custom_marker(self):
        fmt = HexDumpFormat(frame_start=r'^Frame \d+:')
        self.assertTrue(fmt.is_boundary('Frame 3: 60 bytes'))
        self.assertFalse(fmt.is_boundary('    1 0.000000 a -> b'))


class TestFrameReassembler(unittest.TestCase):
    def test_scenario_hello_then_pending(self):
        r = FrameReassembler()
        out = feed_all(r, ['00e0 48 65 6c 6c 6f', '', '00e0 42 75 6e'])
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].seq, 1)
        self.assertEqual(out[0].hex, '48656c6c6f')
        self.assertTrue(r.buffering)
        self.assertEqual(r.pending_hex, '42756e')

    def test_blank_lines_not_buffered(self):
        r = FrameReassembler()
        out = feed_all(r, ['', '', '0000 41', '', '', '0000 42', ''])
        self.assertEqual([f.seq for f in out], [1, 2])
        self.assertEqual([f.lines for f in out], [('0000 41',), ('0000 42',)])

    def test_sequence_gapless(self):
        r = FrameReassembler()
        lines = []
        for i in range(50):
            lines += [f'0000 {i:02x}', '']
        out = feed_all(r, lines)
        self.assertEqual([f.seq for f in out], list(range(1, 51)))
        self.assertEqual(r.frames_closed, 50)

    def test_marker_closes_and_opens(self):
        r = FrameReassembler()
        out = feed_all(r, [
            '    1 0.000000 10.0.0.1 -> 10.0.0.2 UDP 60',
            '0000  41 42   AB',
            '    2 0.100000 10.0.0.1 -> 10.0.0.2 UDP 60',
            '0000  43 44   CD',
            '',
        ])
        self.assertEqual([f.hex for f in out], ['4142', '4344'])
        self.assertTrue(out[0].lines[0].strip().startswith('1 '))

    def test_summary_blank_dump_is_one_frame(self):
        r = FrameReassembler()
        out = feed_all(r, [
            '    1 0.000000 10.0.0.1 -> 10.0.0.2 UDP 60',
            '',
            '0000  41 42   AB',
            '',
        ])
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].hex, '4142')
        self.assertEqual(len(out[0].lines), 2)

    def test_non_dump_lines_kept_without_hex(self):
        r = FrameReassembler()
        out = feed_all(r, ['Reassembled TCP (2 bytes):', '0000  41 42', ''])
        self.assertEqual(out[0].hex, '4142')
        self.assertEqual(out[0].lines[0], 'Reassembled TCP (2 bytes):')

    def test_flush_discards_tail(self):
        r = FrameReassembler()
        feed_all(r, ['0000 41', '', '0000 42'])
        self.assertEqual(list(r.flush()), [])
        self.assertEqual(r.discarded, 1)
        self.assertFalse(r.buffering)
        # numbering continues after a discarded tail
        out = feed_all(r, ['0000 43', ''])
        self.assertEqual(out[0].seq, 2)


class TestPacketFramer(unittest.TestCase):
    def test_record_is_one_frame(self):
        buf = build_udp_frame(b'hi')
        p = PacketFramer()
        out = list(p.feed(PcapRecord(ts=1.0, buf=buf, linktype=1)))
        out += list(p.feed(PcapRecord(ts=2.0, buf=buf, linktype=1)))
        self.assertEqual([f.seq for f in out], [1, 2])
        self.assertEqual(out[0].hex, buf.hex())
        self.assertEqual(out[0].raw, buf)
        self.assertTrue(out[0].summary.startswith('10.0.0.1 -> 10.0.0.2 udp'))

    def test_parse_l3_addrs_garbage(self):
        self.assertEqual(parse_l3_addrs(b'\x00\x01'), (None, None, 'none'))

    def test_parse_l3_addrs_raw_ip(self):
        buf = build_udp_frame(b'x')[14:]
        src, dst, proto = parse_l3_addrs(buf, 101)
        self.assertEqual((src, dst, proto), ('10.0.0.1', '10.0.0.2', 'udp'))


if __name__ == '__main__':
    unittest.main()
