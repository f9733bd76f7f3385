import pandas as pd
import matplotlib.pyplot as plt
from pathlib import Path

from .paths import get_plot_path
from .recorder import HEADER
from .comms import TIMESTAMP_FORMAT
from .safety import safe_execute

# ==================================================================================
# POST-SESSION PLOT
# Turns the recorded CSV into a static PNG next to it. Never opens a window.
# ==================================================================================

def load_recording(csv_path) -> pd.DataFrame:
    """
    Reads a recorded CSV into a frame with a 'seconds' column (time since the
    first row) and one numeric column per comma-separated field of 'data'.
    Non-numeric cells become NaN; columns with no numbers at all are dropped.
    """
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    missing = [c for c in HEADER if c not in df.columns]
    if missing:
        raise ValueError(f"{csv_path} is missing columns: {', '.join(missing)}")

    stamps = pd.to_datetime(df["timestamp"], format=TIMESTAMP_FORMAT, errors="coerce")
    df = df[stamps.notna()]
    stamps = stamps[stamps.notna()]

    out = pd.DataFrame(index=df.index)
    if df.empty:
        out["seconds"] = pd.Series(dtype=float)
        return out
    out["seconds"] = (stamps - stamps.iloc[0]).dt.total_seconds()

    fields = df["data"].str.split(",", expand=True)
    values = fields.apply(pd.to_numeric, errors="coerce").dropna(axis=1, how="all")
    for i, col in enumerate(values.columns, start=1):
        out[f"value{i}"] = values[col]
    return out


def save_recording_plot(df: pd.DataFrame, plot_path) -> Path:
    value_cols = [c for c in df.columns if c != "seconds"]
    fig, ax = plt.subplots(figsize=(10, 5))
    for col in value_cols:
        ax.plot(df["seconds"], df[col], "-", label=col)

    ax.set_title("Recorded serial data")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Value")
    ax.grid(True, alpha=0.3)
    if len(value_cols) > 1:
        ax.legend()

    fig.tight_layout()
    plot_path = Path(plot_path)
    fig.savefig(plot_path, dpi=150)
    plt.close(fig)
    return plot_path


@safe_execute
def generate_post_session_plot(csv_path, logger=None):
    """
    Reads the CSV written during the session and saves a PNG beside it.
    Called after the session ends; failures are reported, never raised.
    Returns the PNG path, or None when there was nothing to plot.
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        if logger:
            logger.log(f"No CSV found at {csv_path}, skipping plot.")
        return None

    df = load_recording(csv_path)
    if df.empty or len(df.columns) < 2:
        if logger:
            logger.log("No numeric data recorded, skipping plot.")
        return None

    plot_path = save_recording_plot(df, get_plot_path(csv_path))
    if logger:
        logger.log(f"Plot saved to: {plot_path}")
    return plot_path
