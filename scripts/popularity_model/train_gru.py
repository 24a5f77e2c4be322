"""GRU training with early stopping, step LR decay and per-epoch progress callback."""

from dataclasses import dataclass, asdict
from pathlib import Path

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset

from . import config
from .errors import StateError
from .gru_model import GRUForecaster, SequenceDataset
from .metrics import binary_accuracy


@dataclass
class TrainingProgress:
    epoch: int
    loss: float
    accuracy: float
    val_loss: float
    val_accuracy: float
    early_stopping: int
    learning_rate: float

    def as_dict(self):
        return asdict(self)


def set_seed(seed=config.GRU_SEED):
    torch.manual_seed(seed)
    np.random.seed(seed)


def predict(model, X, batch_size=512):
    """Deterministic forward pass in eval mode.

    Returns:
        (N, n_outputs) numpy array of probabilities
    """
    if model is None:
        raise StateError("Model not built or loaded")
    model.eval()
    loader = DataLoader(TensorDataset(torch.tensor(X, dtype=torch.float32)),
                        batch_size=batch_size, shuffle=False)
    outputs = []
    with torch.no_grad():
        for (batch,) in loader:
            outputs.append(model(batch).numpy())
    if not outputs:
        return np.zeros((0, model.n_outputs), dtype=np.float32)
    return np.concatenate(outputs, axis=0)


def predict_with_uncertainty(model, X, n_samples=5):
    """Mean of n stochastic passes with dropout active (batch-norm frozen)."""
    if model is None:
        raise StateError("Model not built or loaded")
    model.eval()
    dropouts = [m for m in model.modules() if isinstance(m, nn.Dropout)]
    try:
        for m in dropouts:
            m.train()
        passes = []
        with torch.no_grad():
            inputs = torch.tensor(X, dtype=torch.float32)
            for _ in range(n_samples):
                passes.append(model(inputs).numpy())
    finally:
        model.eval()
    return np.mean(passes, axis=0)


def evaluate_model(model, X, y):
    """Binary cross-entropy loss and thresholded accuracy (0-1) on (X, y)."""
    preds = predict(model, X)
    if len(preds) == 0:
        return {"loss": float("nan"), "accuracy": float("nan")}
    loss = nn.functional.binary_cross_entropy(
        torch.tensor(preds, dtype=torch.float32),
        torch.tensor(y, dtype=torch.float32),
    )
    return {"loss": float(loss.item()), "accuracy": binary_accuracy(preds, y)}


def train_gru(X_train, y_train, X_val, y_val,
              epochs=config.TRAINING_PRESETS["standard"]["epochs"],
              batch_size=config.TRAINING_PRESETS["standard"]["batch_size"],
              lr=config.GRU_LR,
              weight_decay=config.GRU_WEIGHT_DECAY,
              patience=config.GRU_PATIENCE,
              min_delta=config.GRU_MIN_DELTA,
              lr_step=config.GRU_LR_STEP,
              lr_gamma=config.GRU_LR_GAMMA,
              seed=config.GRU_SEED,
              on_epoch=None):
    """Train a GRUForecaster on windowed samples.

    Args:
        X_train: (N_train, window_size, features) training samples
        y_train: (N_train, n_outputs) binary targets
        X_val: (N_val, window_size, features) validation samples
        y_val: (N_val, n_outputs) binary targets
        on_epoch: optional callable receiving a TrainingProgress once per epoch
        ... hyperparameters from config

    Returns:
        model: trained GRUForecaster with the best validation weights
        history: dict with loss, accuracy, val_loss, val_accuracy, learning_rate
    """
    if len(X_train) < 2:
        raise StateError(f"Need at least 2 training samples, got {len(X_train)}. "
                         "Load more dates before training.")
    set_seed(seed)

    train_ds = SequenceDataset(X_train, y_train)
    # BatchNorm cannot train on a trailing batch of one sample
    drop_last = len(train_ds) > batch_size and len(train_ds) % batch_size == 1
    train_loader = DataLoader(train_ds, batch_size=batch_size, shuffle=True,
                              drop_last=drop_last)

    model = GRUForecaster(X_train.shape[2], y_train.shape[1])
    optimizer = torch.optim.Adam(model.parameters(), lr=lr, weight_decay=weight_decay)
    scheduler = torch.optim.lr_scheduler.StepLR(optimizer, step_size=lr_step, gamma=lr_gamma)
    criterion = nn.BCELoss()

    history = {"loss": [], "accuracy": [], "val_loss": [], "val_accuracy": [],
               "learning_rate": []}
    best_val_loss = float("inf")
    best_state = None
    patience_counter = 0

    print("Starting GRU training...", flush=True)
    for epoch in range(epochs):
        current_lr = optimizer.param_groups[0]["lr"]

        # Train
        model.train()
        loss_sum, acc_sum, seen = 0.0, 0.0, 0
        for sample_batch, target_batch in train_loader:
            optimizer.zero_grad()
            pred = model(sample_batch)
            loss = criterion(pred, target_batch)
            loss.backward()
            optimizer.step()
            n = len(target_batch)
            loss_sum += loss.item() * n
            acc_sum += binary_accuracy(pred.detach().numpy(), target_batch.numpy()) * n
            seen += n
        avg_loss = loss_sum / seen
        avg_acc = acc_sum / seen

        # Validate
        if len(X_val) > 0:
            val = evaluate_model(model, X_val, y_val)
        else:
            val = {"loss": avg_loss, "accuracy": avg_acc}

        history["loss"].append(avg_loss)
        history["accuracy"].append(avg_acc)
        history["val_loss"].append(val["loss"])
        history["val_accuracy"].append(val["accuracy"])
        history["learning_rate"].append(current_lr)

        # Early stopping
        if val["loss"] < best_val_loss - min_delta:
            best_val_loss = val["loss"]
            best_state = {k: v.clone() for k, v in model.state_dict().items()}
            patience_counter = 0
        else:
            patience_counter += 1

        if on_epoch is not None:
            on_epoch(TrainingProgress(
                epoch=epoch + 1,
                loss=avg_loss,
                accuracy=avg_acc,
                val_loss=val["loss"],
                val_accuracy=val["accuracy"],
                early_stopping=patience_counter,
                learning_rate=current_lr,
            ))

        if (epoch + 1) % config.GRU_LOG_EVERY == 0:
            print(f"Epoch {epoch + 1}/{epochs} - LR: {current_lr:.6f} - "
                  f"Loss: {avg_loss:.4f} - Acc: {avg_acc:.4f} - "
                  f"Val Loss: {val['loss']:.4f} - Val Acc: {val['accuracy']:.4f}", flush=True)

        if patience_counter >= patience:
            print(f"Early stopping triggered at epoch {epoch + 1}", flush=True)
            break
        scheduler.step()

    # Restore best model
    if best_state is not None:
        model.load_state_dict(best_state)
    model.eval()
    print("Training completed", flush=True)
    return model, history


def save_model(model, path=None):
    """Persist weights plus the shapes needed to rebuild the network."""
    if model is None:
        raise StateError("No model to save. Train or load a model first.")
    out_path = Path(path or config.MODEL_PATH)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    torch.save({
        "input_size": model.input_size,
        "n_outputs": model.n_outputs,
        "state_dict": model.state_dict(),
    }, out_path)
    print(f"Model saved to {out_path}", flush=True)
    return out_path


def load_model(path=None):
    """Rebuild a GRUForecaster from a checkpoint written by save_model."""
    checkpoint = torch.load(Path(path or config.MODEL_PATH), map_location="cpu")
    model = GRUForecaster(checkpoint["input_size"], checkpoint["n_outputs"])
    model.load_state_dict(checkpoint["state_dict"])
    model.eval()
    return model
