"""
test_windows.py -- tests for sliding-window construction, chronological
split and tensor validation

Tests:
  10. Shape contract: (S, window, F*N) samples, (S, N*horizon) targets
  11. Candidate range: 11 dates, window 7, horizon 3 -> exactly 1 sample
  12. Strict targets: a missing future observation drops the sample
  13. Lenient inputs: a missing window observation is zero-filled
  14. Target layout: track-major, offset-minor, strict increase
  15. Split: positional 80/20, test windows after train windows
  16. Validation: NaN -> ValidationError, missing tensors -> StateError
"""

import sys
import os

import pytest
import numpy as np
import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from scripts.popularity_model.errors import StateError, ValidationError
from scripts.popularity_model.features import SIMPLE_FEATURES, ADVANCED_FEATURES
from scripts.popularity_model.windows import (
    DatasetSplit,
    build_windows,
    split_data,
    validate_tensors,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _make_rows(n_dates, tracks, features=SIMPLE_FEATURES, missing=(), streams_fn=None):
    """Rows with normalized columns already present.

    Normalized value of feature f for (date index d, track index k) is
    0.01 * d + 0.1 * k + 0.001 * f + 0.5, so zero only appears when filled.
    """
    streams_fn = streams_fn or (lambda d, k: 100.0 * (k + 1) + d)
    records = []
    for d in range(n_dates):
        date = f"2024-02-{d + 1:02d}"
        for k, track in enumerate(tracks):
            if (d, track) in missing:
                continue
            row = {"date": date, "track_id": track, "streams": streams_fn(d, k)}
            for f_idx, feature in enumerate(features):
                row[feature.normalized_column] = 0.5 + 0.01 * d + 0.1 * k + 0.001 * f_idx
            records.append(row)
    return pd.DataFrame(records)


def _dates(n_dates):
    return [f"2024-02-{d + 1:02d}" for d in range(n_dates)]


@pytest.fixture
def tracks():
    return ["t0", "t1", "t2"]


# ===========================================================================
# Test 10: Shape contract
# ===========================================================================

class TestWindowShapes:
    def test_sample_and_target_shapes(self, tracks):
        rows = _make_rows(20, tracks)
        samples, targets = build_windows(rows, tracks, _dates(20), SIMPLE_FEATURES)
        assert samples.shape == (20 - 7 - 3, 7, 5 * 3), f"Got {samples.shape}"
        assert targets.shape == (20 - 7 - 3, 3 * 3), f"Got {targets.shape}"
        assert samples.dtype == np.float32
        assert targets.dtype == np.float32

    def test_advanced_feature_width(self, tracks):
        rows = _make_rows(15, tracks, features=ADVANCED_FEATURES)
        samples, targets = build_windows(rows, tracks, _dates(15), ADVANCED_FEATURES)
        assert samples.shape[1:] == (7, 9 * 3)
        assert targets.shape[1] == 9

    def test_too_few_dates_gives_empty_tensors_with_rank(self, tracks):
        rows = _make_rows(9, tracks)
        samples, targets = build_windows(rows, tracks, _dates(9), SIMPLE_FEATURES)
        assert samples.shape == (0, 7, 15)
        assert targets.shape == (0, 9)

    def test_custom_window_and_horizon(self, tracks):
        rows = _make_rows(12, tracks)
        samples, targets = build_windows(rows, tracks, _dates(12), SIMPLE_FEATURES,
                                         window_size=4, horizon=2)
        assert samples.shape == (12 - 4 - 2, 4, 15)
        assert targets.shape == (6, 6)


# ===========================================================================
# Test 11-12: Candidate range and strict targets
# ===========================================================================

class TestCandidateRange:
    def test_eleven_dates_one_sample(self, tracks):
        rows = _make_rows(11, tracks)
        samples, targets = build_windows(rows, tracks, _dates(11), SIMPLE_FEATURES)
        assert len(samples) == 1, f"Expected exactly 1 sample, got {len(samples)}"
        assert len(targets) == 1

    def test_sample_covers_dates_before_end(self, tracks):
        rows = _make_rows(11, tracks)
        samples, _ = build_windows(rows, tracks, _dates(11), SIMPLE_FEATURES)
        # first feature of track 0 encodes 0.5 + 0.01 * date index
        np.testing.assert_allclose(samples[0, :, 0], 0.5 + 0.01 * np.arange(7), rtol=1e-6)

    @pytest.mark.parametrize("future_idx", [7, 8, 9, 10])
    def test_missing_target_observation_drops_sample(self, tracks, future_idx):
        rows = _make_rows(11, tracks, missing={(future_idx, "t1")})
        samples, targets = build_windows(rows, tracks, _dates(11), SIMPLE_FEATURES)
        assert len(samples) == 0, \
            f"Missing observation at date {future_idx} must drop the sample"
        assert len(targets) == 0

    def test_only_affected_candidate_dropped(self, tracks):
        rows = _make_rows(20, tracks, missing={(15, "t2")})
        samples, _ = build_windows(rows, tracks, _dates(20), SIMPLE_FEATURES)
        # candidates 7..16, those with 15 in [i, i + 3] are 12..15
        assert len(samples) == 10 - 4

    def test_dates_outside_universe_ignored(self, tracks):
        rows = _make_rows(11, tracks + ["other"])
        samples, _ = build_windows(rows, tracks, _dates(11), SIMPLE_FEATURES)
        assert samples.shape == (1, 7, 15)


# ===========================================================================
# Test 13: Lenient inputs
# ===========================================================================

class TestZeroFill:
    def test_missing_window_observation_zero_filled(self, tracks):
        full_rows = _make_rows(11, tracks)
        gap_rows = _make_rows(11, tracks, missing={(3, "t1")})
        full, _ = build_windows(full_rows, tracks, _dates(11), SIMPLE_FEATURES)
        gap, _ = build_windows(gap_rows, tracks, _dates(11), SIMPLE_FEATURES)

        assert gap.shape == full.shape, "Zero-filling must not change the shape"
        np.testing.assert_array_equal(gap[0, 3, 5:10], np.zeros(5))
        np.testing.assert_array_equal(gap[0, 3, :5], full[0, 3, :5])
        np.testing.assert_array_equal(gap[0, :3], full[0, :3])

    def test_duplicate_observation_first_wins(self, tracks):
        rows = _make_rows(11, tracks)
        dup = rows.iloc[[0]].copy()
        dup[SIMPLE_FEATURES[0].normalized_column] = 99.0
        rows = pd.concat([rows, dup], ignore_index=True)
        samples, _ = build_windows(rows, tracks, _dates(11), SIMPLE_FEATURES)
        assert samples[0, 0, 0] == pytest.approx(0.5)


# ===========================================================================
# Test 14: Target layout
# ===========================================================================

class TestTargets:
    def test_track_major_offset_minor(self):
        tracks = ["up", "down"]
        rows = _make_rows(11, tracks,
                          streams_fn=lambda d, k: 100.0 + d if k == 0 else 100.0 - d)
        _, targets = build_windows(rows, tracks, _dates(11), SIMPLE_FEATURES)
        np.testing.assert_array_equal(targets[0], [1, 1, 1, 0, 0, 0])

    def test_equal_streams_is_not_an_increase(self):
        tracks = ["flat"]
        rows = _make_rows(11, tracks, streams_fn=lambda d, k: 50.0)
        _, targets = build_windows(rows, tracks, _dates(11), SIMPLE_FEATURES)
        np.testing.assert_array_equal(targets[0], [0, 0, 0])

    def test_each_offset_compared_to_end_date(self):
        # streams at dates 7..10: 10, 5, 12, 10
        values = {7: 10.0, 8: 5.0, 9: 12.0, 10: 10.0}
        rows = _make_rows(11, ["x"], streams_fn=lambda d, k: values.get(d, 1.0))
        _, targets = build_windows(rows, ["x"], _dates(11), SIMPLE_FEATURES)
        np.testing.assert_array_equal(targets[0], [0, 1, 0])


# ===========================================================================
# Test 15: Split
# ===========================================================================

class TestSplit:
    def test_positional_80_20(self):
        samples = np.arange(10 * 2 * 3, dtype=np.float32).reshape(10, 2, 3)
        targets = np.arange(10 * 4, dtype=np.float32).reshape(10, 4)
        split = split_data(samples, targets)
        assert len(split.X_train) == 8
        assert len(split.X_test) == 2
        np.testing.assert_array_equal(split.X_test, samples[8:])
        np.testing.assert_array_equal(split.y_train, targets[:8])

    def test_test_windows_after_train_windows(self, tracks):
        rows = _make_rows(30, tracks)
        samples, targets = build_windows(rows, tracks, _dates(30), SIMPLE_FEATURES)
        split = split_data(samples, targets)
        # first feature of track 0 on the last window day increases with date
        last_train = split.X_train[:, -1, 0].max()
        first_test = split.X_test[:, -1, 0].min()
        assert last_train < first_test, "Split must not reshuffle windows"

    def test_floor_of_ratio(self):
        samples = np.zeros((7, 2, 3), dtype=np.float32)
        targets = np.zeros((7, 4), dtype=np.float32)
        split = split_data(samples, targets)
        assert len(split.X_train) == 5
        assert len(split.X_test) == 2

    def test_shape_properties(self):
        samples = np.zeros((5, 7, 15), dtype=np.float32)
        targets = np.zeros((5, 9), dtype=np.float32)
        split = split_data(samples, targets)
        assert split.input_shape == (7, 15)
        assert split.n_outputs == 9


# ===========================================================================
# Test 16: Validation
# ===========================================================================

class TestValidation:
    def _split(self):
        return DatasetSplit(
            X_train=np.zeros((4, 7, 5), dtype=np.float32),
            y_train=np.zeros((4, 3), dtype=np.float32),
            X_test=np.zeros((1, 7, 5), dtype=np.float32),
            y_test=np.zeros((1, 3), dtype=np.float32),
        )

    def test_clean_split_passes(self):
        assert validate_tensors(self._split()) is True

    @pytest.mark.parametrize("name", ["X_train", "y_train", "X_test", "y_test"])
    def test_nan_is_validation_error(self, name):
        split = self._split()
        arr = getattr(split, name)
        arr.flat[0] = np.nan
        with pytest.raises(ValidationError, match=name):
            validate_tensors(split)

    def test_missing_split_is_state_error(self):
        with pytest.raises(StateError):
            validate_tensors(None)

    def test_missing_tensor_is_state_error(self):
        split = self._split()
        split.X_test = None
        with pytest.raises(StateError):
            validate_tensors(split)
