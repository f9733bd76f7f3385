import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# headless backend before pyplot is imported
os.environ.setdefault("MPLBACKEND", "Agg")

# Add repo root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from serial_logger.utils.plotter import load_recording, generate_post_session_plot  # noqa: E402

RECORDING = (
    "timestamp,data\n"
    '2024-05-01 12:00:00.000,"1.0,-2.5,ok"\n'
    '2024-05-01 12:00:00.500,"2.0,-3.5,ok"\n'
    '2024-05-01 12:00:01.250,"3.0,oops,ok"\n'
)


class TestPlotter(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.csv_path = self.tmp / "output.csv"

    def tearDown(self):
        self._tmp.cleanup()

    def test_load_recording_splits_numeric_fields(self):
        self.csv_path.write_text(RECORDING, encoding="utf-8")
        df = load_recording(self.csv_path)

        self.assertEqual(list(df.columns), ["seconds", "value1", "value2"])
        self.assertEqual(list(df["seconds"]), [0.0, 0.5, 1.25])
        self.assertEqual(list(df["value1"]), [1.0, 2.0, 3.0])
        self.assertTrue(df["value2"].isna().iloc[2])

    def test_plot_saved_next_to_csv(self):
        self.csv_path.write_text(RECORDING, encoding="utf-8")
        logger = MagicMock()

        plot_path = generate_post_session_plot(self.csv_path, logger)

        self.assertEqual(plot_path, self.tmp / "output_plot.png")
        self.assertTrue(plot_path.exists())
        logger.log.assert_called_with(f"Plot saved to: {plot_path}")

    def test_non_numeric_recording_is_skipped(self):
        self.csv_path.write_text("timestamp,data\n2024-05-01 12:00:00.000,hello\n", encoding="utf-8")
        self.assertIsNone(generate_post_session_plot(self.csv_path, MagicMock()))
        self.assertFalse((self.tmp / "output_plot.png").exists())

    def test_broken_csv_is_reported_not_raised(self):
        self.csv_path.write_text("something,else\n1,2\n", encoding="utf-8")
        logger = MagicMock()

        self.assertIsNone(generate_post_session_plot(self.csv_path, logger))
        logger.error.assert_called_once()
        self.assertIn("SAFETY CATCH", logger.error.call_args[0][0])


if __name__ == "__main__":
    unittest.main()
