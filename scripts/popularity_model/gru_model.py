"""PyTorch GRU forecaster: (B, window, F*N) -> (B, N*horizon) probabilities."""

import torch
import torch.nn as nn
from torch.utils.data import Dataset

from . import config


class SequenceDataset(Dataset):
    """PyTorch dataset over windowed samples and their binary targets."""

    def __init__(self, samples, targets):
        """
        Args:
            samples: (N, window_size, features) float array
            targets: (N, n_outputs) float array in {0, 1}
        """
        self.samples = torch.tensor(samples, dtype=torch.float32)
        self.targets = torch.tensor(targets, dtype=torch.float32)

    def __len__(self):
        return len(self.targets)

    def __getitem__(self, idx):
        return self.samples[idx], self.targets[idx]


class SequenceBatchNorm(nn.Module):
    """BatchNorm1d over the feature axis of a (B, T, C) sequence."""

    def __init__(self, num_features):
        super().__init__()
        self.bn = nn.BatchNorm1d(num_features)

    def forward(self, x):
        return self.bn(x.transpose(1, 2)).transpose(1, 2)


class GRUForecaster(nn.Module):
    """Two stacked GRUs followed by a dense head with sigmoid outputs.

    Architecture:
        GRU(input, 128, full sequence) -> Dropout(0.3) -> BatchNorm
        GRU(128, 64, last step)        -> Dropout(0.3) -> BatchNorm
        Linear(64, 128) -> ReLU -> Dropout(0.4) -> BatchNorm
        Linear(128, 64) -> ReLU -> Dropout(0.3) -> BatchNorm
        Linear(64, 32)  -> ReLU -> Dropout(0.2)
        Linear(32, n_outputs) -> Sigmoid
    """

    def __init__(self, input_size, n_outputs,
                 gru_units=config.GRU_UNITS,
                 dense_units=config.DENSE_UNITS,
                 gru_dropout=config.GRU_DROPOUT,
                 dense_dropout=config.DENSE_DROPOUT):
        super().__init__()
        self.input_size = input_size
        self.n_outputs = n_outputs

        self.gru1 = nn.GRU(input_size, gru_units[0], batch_first=True)
        self.drop1 = nn.Dropout(gru_dropout)
        self.bn1 = SequenceBatchNorm(gru_units[0])
        self.gru2 = nn.GRU(gru_units[0], gru_units[1], batch_first=True)
        self.drop2 = nn.Dropout(gru_dropout)
        self.bn2 = nn.BatchNorm1d(gru_units[1])

        self.fc1 = nn.Linear(gru_units[1], dense_units[0])
        self.drop3 = nn.Dropout(dense_dropout[0])
        self.bn3 = nn.BatchNorm1d(dense_units[0])
        self.fc2 = nn.Linear(dense_units[0], dense_units[1])
        self.drop4 = nn.Dropout(dense_dropout[1])
        self.bn4 = nn.BatchNorm1d(dense_units[1])
        self.fc3 = nn.Linear(dense_units[1], dense_units[2])
        self.drop5 = nn.Dropout(dense_dropout[2])
        self.out = nn.Linear(dense_units[2], n_outputs)
        self.relu = nn.ReLU()

    def forward(self, x):
        """
        Args:
            x: (B, window_size, input_size)

        Returns:
            (B, n_outputs) probabilities
        """
        x, _ = self.gru1(x)                    # (B, T, 128)
        x = self.bn1(self.drop1(x))
        x, _ = self.gru2(x)                    # (B, T, 64)
        x = self.bn2(self.drop2(x[:, -1, :]))  # (B, 64)
        x = self.bn3(self.drop3(self.relu(self.fc1(x))))
        x = self.bn4(self.drop4(self.relu(self.fc2(x))))
        x = self.drop5(self.relu(self.fc3(x)))
        return torch.sigmoid(self.out(x))

    def summary(self):
        """One line per child module with its parameter count."""
        lines = ["GRU Forecaster Architecture:"]
        total = 0
        for i, (name, module) in enumerate(self.named_children()):
            params = sum(p.numel() for p in module.parameters())
            total += params
            lines.append(f"{i + 1}. {name} ({module.__class__.__name__}) - Params: {params}")
        lines.append(f"Total Parameters: {total}")
        return "\n".join(lines)
