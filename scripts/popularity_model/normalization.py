"""Per-track min-max normalization fitted on training dates only."""

import math
from dataclasses import dataclass

import numpy as np

from . import config


@dataclass(frozen=True)
class MinMax:
    min: float
    max: float


DEFAULT_PARAMS = MinMax(0.0, 1.0)
DEGENERATE_VALUE = 0.5


def min_max_normalize(value, params):
    """(value - min) / (max - min); 0.5 when the range is empty or unknown."""
    if params is not None and params.max > params.min:
        return (value - params.min) / (params.max - params.min)
    return DEGENERATE_VALUE


def _normalize_array(values, params):
    if params.max > params.min:
        return (values - params.min) / (params.max - params.min)
    return np.full(len(values), DEGENERATE_VALUE)


def training_dates(dates, fraction=config.TRAIN_DATE_FRACTION):
    """Earliest `fraction` of the lexically sorted distinct dates."""
    ordered = sorted(set(dates))
    split_idx = math.floor(len(ordered) * fraction)
    return ordered[:split_idx]


def fit_normalization(rows, selected_ids, dates, features,
                      fraction=config.TRAIN_DATE_FRACTION):
    """Compute {min, max} per track per feature from training-period rows.

    Rows dated after the training cut are never looked at, so appending
    later observations cannot move the parameters.

    Args:
        rows: engineered record table
        selected_ids: ordered track universe
        dates: distinct dates of the load (any order)
        features: sequence of Feature members to fit

    Returns:
        {track_id: {Feature: MinMax}}
    """
    train_set = set(training_dates(dates, fraction))
    subset = rows[rows["date"].isin(train_set)]

    params = {}
    for track_id in selected_ids:
        track_rows = subset[subset["track_id"] == track_id]
        track_params = {}
        for feature in features:
            values = track_rows[feature.column].dropna()
            if len(values) > 0:
                track_params[feature] = MinMax(float(values.min()), float(values.max()))
            else:
                track_params[feature] = DEFAULT_PARAMS
        params[track_id] = track_params
    return params


def apply_normalization(rows, params, features):
    """Write `<column>_normalized` for every row, train and test alike.

    Rows of a track without fitted parameters get 0.5 for every feature.
    """
    df = rows.reset_index(drop=True).copy()
    groups = df.groupby("track_id", sort=False).indices

    for feature in features:
        values = df[feature.column].to_numpy(dtype=np.float64)
        out = np.full(len(df), DEGENERATE_VALUE)
        for track_id, positions in groups.items():
            track_params = params.get(track_id)
            if track_params is None:
                continue
            out[positions] = _normalize_array(values[positions],
                                              track_params.get(feature, DEFAULT_PARAMS))
        df[feature.normalized_column] = out
    return df
