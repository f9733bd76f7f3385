import csv
import os
import sys
import datetime
import tempfile
import unittest
from pathlib import Path

# Add repo root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from serial_logger.utils.comms import Record  # noqa: E402
from serial_logger.utils.errors import WriteFailure  # noqa: E402
from serial_logger.utils.recorder import CsvRecorder, BUFFER_UNTIL_STOP  # noqa: E402


def rows(path):
    with open(path, newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


class TestCsvRecorder(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "out" / "output.csv"

    def tearDown(self):
        self._tmp.cleanup()

    def test_writes_header_and_rows(self):
        recorder = CsvRecorder(self.path)
        recorder.open()
        stamp = datetime.datetime(2024, 5, 1, 12, 30, 15, 250000)
        recorder.write(Record(stamp, "1,2,3"))
        # flush policy: visible before close
        self.assertEqual(rows(self.path), [["timestamp", "data"], ["2024-05-01 12:30:15.250", "1,2,3"]])
        recorder.close()
        self.assertEqual(recorder.rows_written, 1)

    def test_overwrite_by_default(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("old,content\n", encoding="utf-8")
        recorder = CsvRecorder(self.path)
        recorder.open()
        recorder.close()
        self.assertEqual(rows(self.path), [["timestamp", "data"]])

    def test_append_keeps_existing_rows_without_second_header(self):
        first = CsvRecorder(self.path)
        first.open()
        first.write(Record.capture("a"))
        first.close()

        second = CsvRecorder(self.path, append=True)
        second.open()
        second.write(Record.capture("b"))
        second.close()

        content = rows(self.path)
        self.assertEqual(content[0], ["timestamp", "data"])
        self.assertEqual([r[1] for r in content[1:]], ["a", "b"])

    def test_append_to_new_file_writes_header(self):
        recorder = CsvRecorder(self.path, append=True)
        recorder.open()
        recorder.close()
        self.assertEqual(rows(self.path), [["timestamp", "data"]])

    def test_buffered_rows_land_on_close(self):
        recorder = CsvRecorder(self.path, durability=BUFFER_UNTIL_STOP)
        recorder.open()
        recorder.write(Record.capture("late"))
        recorder.close()
        self.assertEqual([r[1] for r in rows(self.path)[1:]], ["late"])

    def test_open_twice_and_close_twice_are_harmless(self):
        recorder = CsvRecorder(self.path)
        recorder.open()
        recorder.open()
        recorder.close()
        recorder.close()
        self.assertFalse(recorder.is_open)

    def test_write_when_closed_fails(self):
        with self.assertRaises(WriteFailure):
            CsvRecorder(self.path).write(Record.capture("x"))

    def test_open_failure(self):
        self.path.mkdir(parents=True)
        with self.assertRaises(WriteFailure):
            CsvRecorder(self.path).open()

    def test_unknown_durability_rejected(self):
        with self.assertRaises(ValueError):
            CsvRecorder(self.path, durability="sometimes")


if __name__ == "__main__":
    unittest.main()
