"""
Path resolver for development and compiled (PyInstaller) modes.
Relative log and output paths are resolved against the working directory,
so a frozen executable writes next to where it was launched from.
"""
import sys
from pathlib import Path


def get_app_root():
    """
    Get the application root directory.
    Works in both development and PyInstaller compiled mode.

    Returns:
        Path: Root directory of the application
    """
    if getattr(sys, 'frozen', False):
        # Running as compiled executable (PyInstaller)
        return Path(sys.executable).parent
    else:
        # Running as Python package
        # __file__ = ".../serial_logger/utils/paths.py"
        return Path(__file__).resolve().parent.parent.parent


def resolve_path(path) -> Path:
    """Expand ~ and anchor relative paths at the current working directory."""
    path = Path(path).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def get_logs_dir(base=None):
    """Get the logs directory (always writable), creating it if needed."""
    logs = resolve_path(base) if base else get_app_root() / "logs"
    logs.mkdir(parents=True, exist_ok=True)
    return logs


def get_plot_path(csv_path):
    """PNG path that sits next to the recorded CSV."""
    csv_path = Path(csv_path)
    return csv_path.with_name(f"{csv_path.stem}_plot.png")
