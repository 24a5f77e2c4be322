"""Evaluate a trained forecaster on the held-out windows of a pipeline context."""

from dataclasses import dataclass, field, asdict
from typing import List, Optional

from . import config
from .analysis import feature_importance, detect_breakouts, actionable_breakouts
from .errors import ComputationError, StateError
from .metrics import consistent_accuracy, track_day_accuracy, classification_metrics, assess_performance
from .train_gru import evaluate_model, predict, predict_with_uncertainty


@dataclass
class EvaluationReport:
    loss: float
    accuracy: float                     # model-reported binary accuracy, 0-1
    consistent_accuracy: float          # percent
    classification: dict
    track_accuracies: list
    day_accuracies: List[float]
    feature_importance: Optional[list]  # None when the analysis failed
    breakouts: list = field(default_factory=list)
    actionable_breakouts: list = field(default_factory=list)
    assessment: dict = field(default_factory=dict)

    def as_dict(self):
        return asdict(self)


def evaluate_forecaster(model, ctx, n_uncertainty_samples=config.UNCERTAINTY_SAMPLES, rng=None):
    """Full evaluation of `model` on ctx.split's test tensors.

    Feature importance and breakout detection degrade independently to
    None / [] on ComputationError; everything else propagates.
    """
    if model is None:
        raise StateError("No trained model. Train or load a model before evaluating.")
    split = ctx.split
    if split is None or split.X_test is None or len(split.X_test) == 0:
        raise StateError("No test data available. Load data and build the dataset first.")

    X_test, y_test = split.X_test, split.y_test
    base = evaluate_model(model, X_test, y_test)
    predictions = predict_with_uncertainty(model, X_test, n_uncertainty_samples)

    accuracy_pct = consistent_accuracy(predictions, y_test)
    track_accs, day_accs = track_day_accuracy(
        predictions, y_test, ctx.selected_ids, ctx.metadata, horizon=ctx.horizon,
    )

    try:
        importance = feature_importance(
            lambda X: predict(model, X), X_test, y_test, ctx.features, rng=rng,
        )
    except ComputationError as exc:
        print(f"Error computing feature importance: {exc}", flush=True)
        importance = None

    try:
        breakouts = detect_breakouts(predictions, ctx.selected_ids, ctx.metadata, horizon=ctx.horizon)
    except ComputationError as exc:
        print(f"Error detecting breakout tracks: {exc}", flush=True)
        breakouts = []

    assessment = assess_performance(accuracy_pct)
    print(f"Accuracy: {accuracy_pct:.2f}% | Loss: {base['loss']:.4f} | "
          f"Status: {assessment['tier']}", flush=True)

    return EvaluationReport(
        loss=base["loss"],
        accuracy=base["accuracy"],
        consistent_accuracy=accuracy_pct,
        classification=classification_metrics(predictions, y_test),
        track_accuracies=track_accs,
        day_accuracies=day_accs,
        feature_importance=importance,
        breakouts=breakouts,
        actionable_breakouts=actionable_breakouts(breakouts),
        assessment=assessment,
    )
