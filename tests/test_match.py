import os
import tempfile
import unittest

from sigtail.core import DecodedFrame, MatchedVariant
from sigtail.match import (
    DEFAULT_SIGNATURE_TEXT, Signature, SignatureScanner, build_signatures, load_signatures, normalize_hex,
)


def frame(hex_digits, seq=1):
    return DecodedFrame(seq=seq, hex=hex_digits, text='')


class TestSignature(unittest.TestCase):
    def test_from_text_narrow_and_wide(self):
        s = Signature.from_text('bu', 'Bu')
        self.assertEqual(s.variants, (('narrow', '4275'), ('wide', '42007500')))

    def test_variants_normalized(self):
        s = Signature(name='x', variants=(('a', '0xDE AD'), ('b', 'be:ef')))
        self.assertEqual(s.variants, (('a', 'dead'), ('b', 'beef')))

    def test_invalid_variants(self):
        for bad in ('', 'xyz1', 'abc'):
            with self.assertRaises(ValueError):
                normalize_hex(bad)
        with self.assertRaises(ValueError):
            Signature(name='empty', variants=())
        with self.assertRaises(ValueError):
            Signature.from_text('empty', '')


class TestScanner(unittest.TestCase):
    def setUp(self):
        self.sig = Signature.from_text('bu', 'Bu')
        self.scanner = SignatureScanner([self.sig])

    def test_narrow_only(self):
        hits = self.scanner.scan(frame('00004275ff'))
        self.assertEqual(hits, {MatchedVariant('bu', 'narrow', '4275')})

    def test_wide_only(self):
        hits = self.scanner.scan(frame('4200750000'))
        self.assertEqual({h.variant for h in hits}, {'wide'})

    def test_both_reported(self):
        hits = self.scanner.scan(frame('4275' + '00' + '42007500'))
        self.assertEqual({h.variant for h in hits}, {'narrow', 'wide'})

    def test_empty_frame_never_matches(self):
        self.assertEqual(self.scanner.scan(frame('')), set())

    def test_no_match(self):
        self.assertEqual(self.scanner.scan(frame('48656c6c6f')), set())

    def test_frame_hex_case_insensitive(self):
        self.assertEqual(len(self.scanner.scan(frame('4275'.upper()))), 1)

    def test_several_signatures(self):
        scanner = SignatureScanner([self.sig, Signature.from_hex('magic', 'DEADBEEF')])
        hits = scanner.scan(frame('deadbeef4275'))
        self.assertEqual({(h.signature, h.variant) for h in hits}, {('bu', 'narrow'), ('magic', 'hex')})

    def test_requires_signatures(self):
        with self.assertRaises(ValueError):
            SignatureScanner([])


class TestSignatureConfig(unittest.TestCase):
    def _write(self, text):
        fd, path = tempfile.mkstemp(suffix='.yaml')
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
        self.addCleanup(os.remove, path)
        return path

    def test_load_all_shapes(self):
        path = self._write(
            "signatures:\n"
            "  - name: target\n"
            "    text: Sangoon\n"
            "  - name: magic\n"
            "    hex: 'deadbeef'\n"
            "  - name: labeled\n"
            "    variants:\n"
            "      narrow: '4275'\n"
            "      wide: '42007500'\n"
            "  - name: listed\n"
            "    variants: ['41', '4100']\n"
        )
        sigs = load_signatures(path)
        self.assertEqual([s.name for s in sigs], ['target', 'magic', 'labeled', 'listed'])
        self.assertEqual(sigs[0].variants[0], ('narrow', b'Sangoon'.hex()))
        self.assertEqual(sigs[1].variants, (('hex', 'deadbeef'),))
        self.assertEqual(sigs[2].variants, (('narrow', '4275'), ('wide', '42007500')))
        self.assertEqual(sigs[3].variants, (('v0', '41'), ('v1', '4100')))

    def test_bad_entry(self):
        path = self._write("signatures:\n  - name: nothing\n")
        with self.assertRaises(ValueError):
            load_signatures(path)

    def test_unquoted_hex_rejected(self):
        path = self._write("signatures:\n  - name: num\n    hex: 1234\n")
        with self.assertRaises(ValueError):
            load_signatures(path)

    def test_build_default(self):
        sigs = build_signatures()
        self.assertEqual(len(sigs), 1)
        self.assertEqual(sigs[0].name, DEFAULT_SIGNATURE_TEXT)

    def test_build_adhoc(self):
        sigs = build_signatures(texts=['Bu'], hexes=['00ff'])
        self.assertEqual([s.name for s in sigs], ['Bu', '00ff'])


if __name__ == '__main__':
    unittest.main()
