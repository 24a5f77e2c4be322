"""Explicit pipeline context threaded through load -> normalize -> window -> split."""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from . import config
from .data_loader import (
    TrackMetadata, parse_csv, collect_dates, select_top_tracks, engineer_features,
)
from .errors import StateError
from .features import feature_set
from .normalization import fit_normalization, apply_normalization
from .windows import DatasetSplit, build_windows, split_data


@dataclass
class PipelineContext:
    """Everything one load owns, passed explicitly between stages."""
    top_n: int = config.TOP_N_TRACKS
    window_size: int = config.WINDOW_SIZE
    horizon: int = config.HORIZON
    feature_set_name: str = config.DEFAULT_FEATURE_SET
    train_date_fraction: float = config.TRAIN_DATE_FRACTION
    train_sample_fraction: float = config.TRAIN_SAMPLE_FRACTION

    raw_rows: Optional[pd.DataFrame] = None
    dates: List[str] = field(default_factory=list)
    selected_ids: List[str] = field(default_factory=list)
    metadata: Dict[str, TrackMetadata] = field(default_factory=dict)
    rows: Optional[pd.DataFrame] = None
    norm_params: Optional[dict] = None
    split: Optional[DatasetSplit] = None

    @property
    def features(self):
        return feature_set(self.feature_set_name)

    @property
    def features_per_track(self):
        return len(self.features)


def load_pipeline(csv_text, **settings):
    """Parse CSV text, fix the track universe and engineer features.

    Keyword settings override PipelineContext defaults (top_n, window_size,
    horizon, feature_set_name, train_date_fraction, train_sample_fraction).
    """
    ctx = PipelineContext(**settings)
    feature_set(ctx.feature_set_name)

    raw = parse_csv(csv_text)
    ctx.raw_rows = raw
    ctx.dates = collect_dates(raw)
    ctx.selected_ids, filtered, ctx.metadata = select_top_tracks(raw, ctx.top_n)
    ctx.rows = engineer_features(filtered)
    print(f"Selected {len(ctx.selected_ids)} tracks: {ctx.selected_ids}", flush=True)
    return ctx


def build_dataset(ctx):
    """Refit normalization and rebuild the windowed train/test tensors."""
    if ctx.rows is None:
        raise StateError("No data loaded. Load a CSV file before building windows.")

    features = ctx.features
    ctx.norm_params = fit_normalization(
        ctx.rows, ctx.selected_ids, ctx.dates, features,
        fraction=ctx.train_date_fraction,
    )
    ctx.rows = apply_normalization(ctx.rows, ctx.norm_params, features)

    samples, targets = build_windows(
        ctx.rows, ctx.selected_ids, ctx.dates, features,
        window_size=ctx.window_size, horizon=ctx.horizon,
    )
    ctx.split = split_data(samples, targets, train_ratio=ctx.train_sample_fraction)
    print(f"Features per track: {len(features)}, "
          f"Total features: {len(features) * len(ctx.selected_ids)}", flush=True)
    return ctx


def release(ctx):
    """Drop the tensors held by the context."""
    ctx.split = None


@contextmanager
def dataset_scope(ctx):
    """Yield the built split; the context lets go of it on every exit path."""
    if ctx.split is None:
        raise StateError("No dataset built. Call build_dataset first.")
    try:
        yield ctx.split
    finally:
        release(ctx)


def summarize(ctx):
    """Plain-dict summary of a built dataset."""
    n_tracks = len(ctx.selected_ids)
    split = ctx.split
    return {
        "train_samples": 0 if split is None else int(len(split.X_train)),
        "test_samples": 0 if split is None else int(len(split.X_test)),
        "input_shape": [ctx.window_size, ctx.features_per_track * n_tracks],
        "tracks": n_tracks,
        "features_per_track": ctx.features_per_track,
        "features": [f.info.name for f in ctx.features],
        "dates": len(ctx.dates),
    }
