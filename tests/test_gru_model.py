"""
test_gru_model.py -- tests for the GRU forecaster and its training loop

Tests:
  26. Output shape: (B, 7, F*N) -> (B, N*3), probabilities, no NaN
  27. Training: history per epoch, progress callback once per epoch
  28. Early stopping and step learning-rate decay
  29. Uncertainty prediction leaves the model in eval mode
  30. Persistence: save/load reproduces predictions
"""

import sys
import os

import pytest
import torch
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from scripts.popularity_model.errors import StateError
from scripts.popularity_model.gru_model import GRUForecaster, SequenceDataset
from scripts.popularity_model.train_gru import (
    TrainingProgress,
    train_gru,
    predict,
    predict_with_uncertainty,
    evaluate_model,
    save_model,
    load_model,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def synthetic_dataset():
    """X: (40, 7, 15) windows, y: (40, 9) labels driven by the last day."""
    rng = np.random.RandomState(42)
    X = rng.rand(40, 7, 15).astype(np.float32)
    y = np.repeat((X[:, -1, 0::5] > 0.5).astype(np.float32), 3, axis=1)
    return X[:32], y[:32], X[32:], y[32:]


@pytest.fixture
def model():
    torch.manual_seed(42)
    return GRUForecaster(input_size=15, n_outputs=9)


# ===========================================================================
# Test 26: Output shape
# ===========================================================================

class TestGRUOutput:
    def test_output_shape(self, model):
        torch.manual_seed(0)
        model.eval()
        out = model(torch.rand(4, 7, 15))
        assert out.shape == (4, 9), f"Expected (4, 9), got {tuple(out.shape)}"

    def test_outputs_are_probabilities(self, model):
        model.eval()
        out = model(torch.randn(8, 7, 15) * 5)
        assert torch.all(out >= 0) and torch.all(out <= 1)
        assert not torch.isnan(out).any()

    def test_train_mode_batch(self, model):
        model.train()
        out = model(torch.rand(3, 7, 15))
        assert out.shape == (3, 9)

    def test_summary_lists_layers(self, model):
        summary = model.summary()
        assert "gru1" in summary and "Total Parameters" in summary

    def test_sequence_dataset(self, synthetic_dataset):
        X, y, _, _ = synthetic_dataset
        ds = SequenceDataset(X, y)
        assert len(ds) == 32
        sample, target = ds[0]
        assert sample.shape == (7, 15) and target.shape == (9,)


# ===========================================================================
# Test 27: Training
# ===========================================================================

class TestTraining:
    def test_history_lengths(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        _, history = train_gru(X, y, Xv, yv, epochs=3, batch_size=8)
        for key in ("loss", "accuracy", "val_loss", "val_accuracy", "learning_rate"):
            assert len(history[key]) == 3, f"history['{key}'] has {len(history[key])} entries"

    def test_progress_callback_once_per_epoch(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        seen = []
        train_gru(X, y, Xv, yv, epochs=4, batch_size=8, on_epoch=seen.append)
        assert [p.epoch for p in seen] == [1, 2, 3, 4]
        assert all(isinstance(p, TrainingProgress) for p in seen)
        first = seen[0].as_dict()
        for key in ("loss", "accuracy", "val_loss", "val_accuracy",
                    "early_stopping", "learning_rate"):
            assert key in first

    def test_loss_decreases(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        _, history = train_gru(X, y, Xv, yv, epochs=15, batch_size=8, lr=5e-3)
        assert np.mean(history["loss"][-3:]) < np.mean(history["loss"][:3])

    def test_deterministic_with_seed(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        _, h1 = train_gru(X, y, Xv, yv, epochs=2, batch_size=8, seed=42)
        _, h2 = train_gru(X, y, Xv, yv, epochs=2, batch_size=8, seed=42)
        assert h1["loss"] == pytest.approx(h2["loss"])

    def test_single_sample_rejected(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        with pytest.raises(StateError):
            train_gru(X[:1], y[:1], Xv, yv, epochs=1)

    def test_trailing_single_sample_batch_handled(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        _, history = train_gru(X[:17], y[:17], Xv, yv, epochs=1, batch_size=8)
        assert len(history["loss"]) == 1


# ===========================================================================
# Test 28: Early stopping and learning-rate decay
# ===========================================================================

class TestSchedule:
    def test_early_stopping(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        seen = []
        # only the first epoch beats an infinite best loss by min_delta
        _, history = train_gru(X, y, Xv, yv, epochs=20, batch_size=8,
                               patience=3, min_delta=1e9, on_epoch=seen.append)
        assert len(history["loss"]) == 4, f"Expected stop after epoch 4, ran {len(history['loss'])}"
        assert [p.early_stopping for p in seen] == [0, 1, 2, 3]

    def test_learning_rate_halves_every_step(self, synthetic_dataset):
        X, y, Xv, yv = synthetic_dataset
        _, history = train_gru(X, y, Xv, yv, epochs=5, batch_size=16,
                               lr=1e-3, lr_step=2, patience=100)
        assert history["learning_rate"] == pytest.approx([1e-3, 1e-3, 5e-4, 5e-4, 2.5e-4])


# ===========================================================================
# Test 29: Prediction helpers
# ===========================================================================

class TestPrediction:
    def test_predict_shape(self, model, synthetic_dataset):
        X, _, _, _ = synthetic_dataset
        preds = predict(model, X)
        assert preds.shape == (32, 9)

    def test_uncertainty_shape_and_mode(self, model, synthetic_dataset):
        X, _, _, _ = synthetic_dataset
        preds = predict_with_uncertainty(model, X, n_samples=3)
        assert preds.shape == (32, 9)
        assert np.all((preds >= 0) & (preds <= 1))
        assert not any(m.training for m in model.modules()), \
            "Model must be back in eval mode after MC-dropout prediction"

    def test_evaluate_model(self, model, synthetic_dataset):
        _, _, Xv, yv = synthetic_dataset
        result = evaluate_model(model, Xv, yv)
        assert result["loss"] > 0
        assert 0.0 <= result["accuracy"] <= 1.0

    def test_predict_without_model(self, synthetic_dataset):
        X, _, _, _ = synthetic_dataset
        with pytest.raises(StateError):
            predict(None, X)


# ===========================================================================
# Test 30: Persistence
# ===========================================================================

class TestPersistence:
    def test_round_trip(self, model, synthetic_dataset, tmp_path):
        X, _, _, _ = synthetic_dataset
        path = save_model(model, tmp_path / "model.pt")
        restored = load_model(path)
        np.testing.assert_allclose(predict(restored, X), predict(model, X), rtol=1e-5)

    def test_save_without_model(self, tmp_path):
        with pytest.raises(StateError):
            save_model(None, tmp_path / "model.pt")
