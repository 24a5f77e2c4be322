"""Evaluation metrics: consistent accuracy, per-track / per-day accuracy, tiers."""

from dataclasses import dataclass
from typing import List

import numpy as np
from sklearn.metrics import accuracy_score, f1_score

from . import config


@dataclass
class TrackAccuracy:
    track_id: str
    track_name: str
    accuracy: float
    day_accuracies: List[float]
    hit_potential: str = ""


def _as_matrix(arr):
    arr = np.asarray(arr, dtype=np.float64)
    if arr.ndim != 2:
        raise ValueError(f"Expected a (samples, outputs) matrix, got shape {arr.shape}")
    return arr


def binary_accuracy(predictions, targets, threshold=config.DECISION_THRESHOLD):
    """Fraction of exact matches after thresholding both matrices.

    The denominator is rows x columns taken from the shape.
    """
    pred = _as_matrix(predictions)
    true = _as_matrix(targets)
    if pred.shape != true.shape:
        raise ValueError(f"Shape mismatch: predictions {pred.shape} vs targets {true.shape}")
    total = pred.shape[0] * pred.shape[1]
    if total == 0:
        return 0.0
    correct = int(((pred > threshold) == (true > threshold)).sum())
    return correct / total


def consistent_accuracy(predictions, targets, threshold=config.DECISION_THRESHOLD):
    """Thresholded exact-match accuracy over the full matrix, in percent."""
    return binary_accuracy(predictions, targets, threshold) * 100.0


def classification_metrics(predictions, targets, threshold=config.DECISION_THRESHOLD):
    """Accuracy and macro F1 over every flattened (sample, output) label."""
    pred = (_as_matrix(predictions) > threshold).astype(int).ravel()
    true = (_as_matrix(targets) > threshold).astype(int).ravel()
    if len(true) == 0:
        return {"accuracy": 0.0, "f1_macro": 0.0}
    acc = accuracy_score(true, pred)
    f1 = f1_score(true, pred, average="macro", zero_division=0)
    return {"accuracy": float(acc), "f1_macro": float(f1)}


def hit_potential(accuracy):
    for minimum, label in config.HIT_POTENTIAL_TIERS:
        if accuracy >= minimum:
            return label
    return config.FALLBACK_HIT_POTENTIAL


def track_day_accuracy(predictions, targets, selected_ids, metadata,
                       horizon=config.HORIZON, threshold=config.DECISION_THRESHOLD):
    """Break thresholded accuracy down by track and by forecast offset.

    Column track_index * horizon + offset holds the label for that track
    `offset + 1` days ahead.

    Returns:
        track_accuracies: list of TrackAccuracy, highest accuracy first
        day_accuracies: list of `horizon` percentages (day +1, +2, ...)
    """
    pred = _as_matrix(predictions)
    true = _as_matrix(targets)
    expected = len(selected_ids) * horizon
    if pred.shape != true.shape or pred.shape[1] != expected:
        raise ValueError(f"Expected (samples, {expected}) matrices, "
                         f"got {pred.shape} and {true.shape}")

    n_samples = pred.shape[0]
    matches = ((pred > threshold) == (true > threshold)).reshape(n_samples, len(selected_ids), horizon)

    track_accuracies = []
    for track_idx, track_id in enumerate(selected_ids):
        track_matches = matches[:, track_idx, :]
        if n_samples > 0:
            accuracy = float(track_matches.mean() * 100)
            per_day = [float(v * 100) for v in track_matches.mean(axis=0)]
        else:
            accuracy = 0.0
            per_day = [0.0] * horizon
        meta = metadata.get(track_id)
        track_accuracies.append(TrackAccuracy(
            track_id=track_id,
            track_name=meta.name if meta is not None else track_id,
            accuracy=accuracy,
            day_accuracies=per_day,
            hit_potential=hit_potential(accuracy),
        ))
    track_accuracies.sort(key=lambda t: t.accuracy, reverse=True)

    if n_samples > 0 and len(selected_ids) > 0:
        day_accuracies = [float(v * 100) for v in matches.mean(axis=(0, 1))]
    else:
        day_accuracies = [0.0] * horizon
    return track_accuracies, day_accuracies


def assess_performance(accuracy):
    """Map a consistent accuracy percentage to a (tier, message) pair."""
    for minimum, tier, message in config.PERFORMANCE_TIERS:
        if accuracy >= minimum:
            return {"tier": tier, "message": message.format(acc=accuracy)}
    tier, message = config.FALLBACK_PERFORMANCE
    return {"tier": tier, "message": message.format(acc=accuracy)}
