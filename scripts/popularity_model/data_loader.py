"""Parse streaming CSV text, select the top tracks, engineer per-track features."""

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from . import config
from .errors import ParseError


@dataclass(frozen=True)
class TrackMetadata:
    id: str
    name: str
    total_streams: float


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_csv_line(line):
    """Split one CSV line on commas that are not inside double quotes.

    Quotes only toggle the in-field state and are dropped; escaped quotes
    ("") are not supported. Every field is whitespace-trimmed.
    """
    fields = []
    current = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


def _find_column(headers, keyword):
    keyword = keyword.lower()
    for idx, header in enumerate(headers):
        if keyword in header.lower():
            return idx
    return -1


def parse_csv(csv_text):
    """Parse raw CSV text into the flat record table.

    Columns are located by case-insensitive substring match on the header
    (see config.COLUMN_KEYWORDS). A missing numeric column degrades that
    feature to 0 for every row; a missing date or track column is fatal.

    Returns:
        DataFrame with columns date, track_id, streams, danceability,
        energy, valence, acousticness (numeric columns as float)
    """
    lines = [line for line in (csv_text or "").split("\n") if line.strip()]
    if not lines:
        raise ParseError("CSV input is empty")

    headers = [h.strip().replace('"', "") for h in lines[0].split(",")]
    indices = {key: _find_column(headers, kw) for key, kw in config.COLUMN_KEYWORDS.items()}
    if indices["date"] < 0 or indices["track_id"] < 0:
        raise ParseError(f"CSV header has no date/track column: {headers}")

    needed = max(indices[key] for key in config.REQUIRED_FOR_ROW)

    records = []
    for line in lines[1:]:
        values = parse_csv_line(line)
        if len(values) <= needed:
            continue
        record = {
            key: values[idx] if 0 <= idx < len(values) else ""
            for key, idx in indices.items()
        }
        if not record["track_id"] or not record["date"]:
            continue
        records.append(record)

    df = pd.DataFrame(records, columns=list(config.COLUMN_KEYWORDS))
    for col in config.NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0).astype(np.float64)

    missing = [key for key, idx in indices.items() if idx < 0]
    if missing:
        print(f"Columns not found, defaulting to 0: {missing}", flush=True)
    print(f"Parsed {len(df)} rows, {df['track_id'].nunique()} tracks, "
          f"{df['date'].nunique()} dates", flush=True)
    return df


def read_csv_text(path=None):
    """Read a CSV file as UTF-8 text; unreadable files are a ParseError."""
    csv_path = Path(path or config.DATA_CSV)
    try:
        return csv_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"Cannot read {csv_path}: {exc}") from exc


def load_csv(path=None):
    """Read a CSV file from disk and parse it."""
    return parse_csv(read_csv_text(path))


def collect_dates(rows):
    """Lexically sorted distinct dates across all parsed rows."""
    return sorted(rows["date"].unique().tolist())


# ---------------------------------------------------------------------------
# Track selection
# ---------------------------------------------------------------------------

def select_top_tracks(rows, n=config.TOP_N_TRACKS):
    """Keep the n tracks with the highest total streams.

    Ties keep first-encountered order. The returned id order is the column
    order of every downstream tensor.

    Returns:
        selected_ids: list of track ids, highest total first
        filtered: rows belonging to the selected tracks
        metadata: {track_id: TrackMetadata} in selected order
    """
    if n <= 0:
        raise ValueError(f"n must be positive, got {n}")

    totals = rows.groupby("track_id", sort=False)["streams"].sum()
    ranked = totals.sort_values(ascending=False, kind="stable")
    selected_ids = ranked.index[:n].tolist()

    filtered = rows[rows["track_id"].isin(selected_ids)].reset_index(drop=True)
    metadata = {
        track_id: TrackMetadata(id=track_id, name=track_id,
                                total_streams=float(totals[track_id]))
        for track_id in selected_ids
    }
    return selected_ids, filtered, metadata


# ---------------------------------------------------------------------------
# Feature engineering
# ---------------------------------------------------------------------------

def engineer_features(rows):
    """Add momentum, growth rate, 3-day moving average and volatility.

    Computed per track over its rows sorted by date string (ascending,
    stable). Row order of the returned table matches the input.
    """
    df = rows.reset_index(drop=True).copy()
    ordered = df.sort_values("date", kind="stable")
    streams = ordered.groupby("track_id", sort=False)["streams"]

    momentum = streams.diff().fillna(0.0)
    previous = streams.shift(1)
    growth = (momentum / previous).replace([np.inf, -np.inf], np.nan).fillna(0.0)
    ma3 = streams.transform(lambda s: s.rolling(3, min_periods=1).mean())
    volatility = streams.transform(lambda s: s.rolling(3, min_periods=1).std(ddof=0))

    df["streams_momentum"] = momentum
    df["streams_growth"] = growth
    df["streams_ma3"] = ma3
    df["streams_volatility"] = volatility.fillna(0.0)
    return df
