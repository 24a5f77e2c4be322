"""Build sliding-window samples and multi-day targets, split train/test."""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from . import config
from .errors import StateError, ValidationError


@dataclass
class DatasetSplit:
    """Chronological train/test tensors.

    X_*: (samples, window_size, features_per_track * n_tracks)
    y_*: (samples, n_tracks * horizon), values in {0, 1}
    """
    X_train: Optional[np.ndarray]
    y_train: Optional[np.ndarray]
    X_test: Optional[np.ndarray]
    y_test: Optional[np.ndarray]

    def arrays(self):
        return {
            "X_train": self.X_train,
            "y_train": self.y_train,
            "X_test": self.X_test,
            "y_test": self.y_test,
        }

    @property
    def input_shape(self):
        return tuple(self.X_train.shape[1:])

    @property
    def n_outputs(self):
        return int(self.y_train.shape[1])


def _observation_grid(rows, selected_ids, dates, features):
    """Dense (date, track) lookup of normalized features and raw streams.

    The first row in table order wins when a (date, track) pair repeats.

    Returns:
        values: (T, N, F) float32, zero where no observation exists
        streams: (T, N) float64
        present: (T, N) bool
    """
    date_pos = {d: i for i, d in enumerate(dates)}
    track_pos = {t: i for i, t in enumerate(selected_ids)}
    n_dates, n_tracks, n_features = len(dates), len(selected_ids), len(features)

    values = np.zeros((n_dates, n_tracks, n_features), dtype=np.float32)
    streams = np.zeros((n_dates, n_tracks), dtype=np.float64)
    present = np.zeros((n_dates, n_tracks), dtype=bool)

    first = rows.drop_duplicates(subset=["date", "track_id"], keep="first")
    first = first[first["date"].isin(list(date_pos)) & first["track_id"].isin(list(track_pos))]
    if len(first) == 0:
        return values, streams, present

    di = first["date"].map(date_pos).to_numpy(dtype=np.int64)
    ti = first["track_id"].map(track_pos).to_numpy(dtype=np.int64)
    norm_cols = [f.normalized_column for f in features]
    values[di, ti, :] = first[norm_cols].to_numpy(dtype=np.float32)
    streams[di, ti] = first["streams"].to_numpy(dtype=np.float64)
    present[di, ti] = True
    return values, streams, present


def build_windows(rows, selected_ids, dates, features,
                  window_size=config.WINDOW_SIZE, horizon=config.HORIZON):
    """Create (sample, target) pairs for every window-end date with full targets.

    Candidate end index i runs from window_size to len(dates) - horizon - 1.
    The sample covers dates[i - window_size:i]; missing observations are
    zero-filled. The target compares streams at dates[i + 1..i + horizon]
    against dates[i] per track (track-major, offset-minor). A candidate is
    dropped if any track lacks an observation at dates[i..i + horizon].

    Returns:
        samples: (S, window_size, F * N) float32
        targets: (S, N * horizon) float32
    """
    dates = list(dates)
    n_tracks, n_features = len(selected_ids), len(features)
    values, streams, present = _observation_grid(rows, selected_ids, dates, features)

    samples = []
    targets = []
    for i in range(window_size, len(dates) - horizon):
        if not present[i:i + horizon + 1].all():
            continue
        window = values[i - window_size:i].reshape(window_size, n_tracks * n_features)
        future = streams[i + 1:i + horizon + 1]            # (horizon, N)
        labels = (future > streams[i]).T.reshape(-1)       # track-major
        samples.append(window)
        targets.append(labels.astype(np.float32))

    if not samples:
        return (np.zeros((0, window_size, n_tracks * n_features), dtype=np.float32),
                np.zeros((0, n_tracks * horizon), dtype=np.float32))
    return np.stack(samples), np.stack(targets)


def split_data(samples, targets, train_ratio=config.TRAIN_SAMPLE_FRACTION):
    """Position-based chronological split; no shuffling."""
    split_idx = math.floor(len(samples) * train_ratio)
    split = DatasetSplit(
        X_train=samples[:split_idx],
        y_train=targets[:split_idx],
        X_test=samples[split_idx:],
        y_test=targets[split_idx:],
    )

    print(f"Total samples: {len(samples)}", flush=True)
    print(f"Training samples: {split_idx}", flush=True)
    print(f"Test samples: {len(samples) - split_idx}", flush=True)
    if samples.ndim == 3:
        print(f"Input shape: {samples.shape[1]} x {samples.shape[2]}", flush=True)
    if split.y_train.size > 0:
        positive = float(split.y_train.sum()) / (split.y_train.shape[0] * split.y_train.shape[1])
        print(f"Training set - Positive samples: {positive * 100:.2f}%", flush=True)
    return split


def validate_tensors(split):
    """Fail if any dataset tensor is missing or contains NaN."""
    if split is None:
        raise StateError("No dataset built. Load a CSV file first.")
    for name, arr in split.arrays().items():
        if arr is None:
            raise StateError(f"{name} is not available. Rebuild the dataset.")
        if np.isnan(arr).any():
            raise ValidationError(f"{name} contains NaN values")
    return True
