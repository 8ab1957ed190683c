import os
import tempfile
import unittest

from sigtail.utils import get_logger, log, remove_file, temp_capture_path


class TestUtils(unittest.TestCase):
    def test_temp_capture_path_unique(self):
        a, b = temp_capture_path('.pcap'), temp_capture_path('.pcap')
        self.assertNotEqual(a, b)
        self.assertTrue(a.name.startswith('sigtail_'))
        self.assertEqual(a.suffix, '.pcap')
        self.assertEqual(str(a.parent), tempfile.gettempdir())

    def test_remove_file_twice(self):
        fd, path = tempfile.mkstemp()
        os.close(fd)
        self.assertTrue(remove_file(path))
        self.assertFalse(remove_file(path))

    def test_child_logger_names(self):
        self.assertIs(get_logger(), log)
        self.assertEqual(get_logger('stream').name, 'sigtail.stream')


if __name__ == '__main__':
    unittest.main()
