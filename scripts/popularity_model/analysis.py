"""Post-training analysis: permutation feature importance and breakout detection."""

from dataclasses import dataclass, asdict

import numpy as np

from . import config
from .errors import ComputationError
from .metrics import binary_accuracy


@dataclass
class FeatureImportance:
    name: str
    score: float        # 0-100, accuracy points lost when the feature is shuffled
    description: str

    def as_dict(self):
        return asdict(self)


@dataclass
class BreakoutSignal:
    track_id: str
    name: str
    score: float
    confidence: float
    trend: str
    risk_level: str

    def as_dict(self):
        return asdict(self)


# ---------------------------------------------------------------------------
# Permutation importance
# ---------------------------------------------------------------------------

def shuffle_feature(X, feature_index, features_per_track, rng=None):
    """Randomly swap one feature's values across samples, days and track slots.

    Every (sample, day, track) position of the feature is swapped with a
    uniformly drawn (sample, day, track) position of the same feature.
    Returns a shuffled copy; X is left untouched.
    """
    data = np.array(X, dtype=np.float32, copy=True)
    if data.ndim != 3:
        raise ComputationError(f"Expected (samples, days, features) input, got {data.shape}")
    n_samples, n_days, width = data.shape
    if features_per_track <= 0 or width % features_per_track != 0:
        raise ComputationError(f"Input width {width} is not a multiple of "
                               f"{features_per_track} features per track")
    if not 0 <= feature_index < features_per_track:
        raise ComputationError(f"Feature index {feature_index} out of range")
    if n_samples == 0:
        return data

    rng = rng if rng is not None else np.random.default_rng()
    n_tracks = width // features_per_track
    column = data[:, :, feature_index::features_per_track]   # view, (S, D, N)

    total = n_samples * n_days * n_tracks
    rand_s = rng.integers(0, n_samples, size=total)
    rand_d = rng.integers(0, n_days, size=total)
    rand_t = rng.integers(0, n_tracks, size=total)
    for k, (s, d, t) in enumerate(np.ndindex(n_samples, n_days, n_tracks)):
        other = (rand_s[k], rand_d[k], rand_t[k])
        column[s, d, t], column[other] = column[other], column[s, d, t]
    return data


def feature_importance(predict_fn, X, y, features, rng=None):
    """Accuracy drop (in points) after shuffling each feature, highest first.

    Args:
        predict_fn: callable (samples) -> (samples, outputs) probabilities
        X: (samples, days, features_per_track * n_tracks) test inputs
        y: (samples, outputs) binary targets
        features: ordered Feature members laid out inside each track slot

    Returns:
        list of FeatureImportance sorted by score, descending
    """
    if len(X) == 0:
        raise ComputationError("No test samples available for feature importance")
    try:
        baseline = binary_accuracy(predict_fn(X), y)
        scores = []
        for idx, feature in enumerate(features):
            shuffled = shuffle_feature(X, idx, len(features), rng)
            shuffled_acc = binary_accuracy(predict_fn(shuffled), y)
            scores.append(FeatureImportance(
                name=feature.info.name,
                score=max(baseline - shuffled_acc, 0.0) * 100,
                description=feature.info.description,
            ))
    except (ValueError, IndexError, RuntimeError) as exc:
        raise ComputationError(f"Feature importance failed: {exc}") from exc
    return sorted(scores, key=lambda f: f.score, reverse=True)


# ---------------------------------------------------------------------------
# Breakout detection
# ---------------------------------------------------------------------------

def risk_level(score, confidence):
    for min_score, min_confidence, level in config.RISK_LEVELS:
        if score > min_score and (min_confidence is None or confidence > min_confidence):
            return level
    return config.FALLBACK_RISK_LEVEL


def detect_breakouts(predictions, selected_ids, metadata, horizon=config.HORIZON):
    """Score every track's predicted 3-day trend, strongest first.

    Per sample: trend = (day3 - day1) * 2 + (day2 - day1) and
    confidence = mean(day1, day2, day3); both averaged over samples.
    """
    n_tracks = len(selected_ids)
    if horizon < 3:
        raise ComputationError(f"Breakout detection needs a 3-day horizon, got {horizon}")
    try:
        pred = np.asarray(predictions, dtype=np.float64)
        if pred.ndim != 2 or pred.shape[1] != n_tracks * horizon:
            raise ComputationError(f"Expected (samples, {n_tracks * horizon}) predictions, "
                                   f"got {pred.shape}")
        if pred.shape[0] == 0:
            raise ComputationError("No predictions available for breakout detection")

        probs = pred.reshape(pred.shape[0], n_tracks, horizon)
        day1, day2, day3 = probs[:, :, 0], probs[:, :, 1], probs[:, :, 2]
        scores = ((day3 - day1) * 2 + (day2 - day1)).mean(axis=0)
        confidences = ((day1 + day2 + day3) / 3).mean(axis=0)

        signals = []
        for track_idx, track_id in enumerate(selected_ids):
            score = float(scores[track_idx])
            confidence = float(confidences[track_idx])
            meta = metadata.get(track_id)
            signals.append(BreakoutSignal(
                track_id=track_id,
                name=meta.name if meta is not None else track_id,
                score=score,
                confidence=confidence,
                trend="rising" if score > 0 else "stable",
                risk_level=risk_level(score, confidence),
            ))
    except (ValueError, IndexError, RuntimeError) as exc:
        raise ComputationError(f"Breakout detection failed: {exc}") from exc
    return sorted(signals, key=lambda s: s.score, reverse=True)


def actionable_breakouts(signals, top_k=config.TOP_BREAKOUTS):
    """Positive-score signals among the top k."""
    return [s for s in signals[:top_k] if s.score > 0]
