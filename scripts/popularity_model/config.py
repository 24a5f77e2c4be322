"""Shared configuration for the streams popularity forecasting pipeline."""

from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_CSV = PROJECT_ROOT / "data" / "streams.csv"
RESULTS_DIR = PROJECT_ROOT / "results"
MODEL_PATH = RESULTS_DIR / "popularity_gru.pt"

# ---------------------------------------------------------------------------
# Track universe and windowing
# ---------------------------------------------------------------------------
TOP_N_TRACKS = 10
WINDOW_SIZE = 7
HORIZON = 3                 # forecast offsets 1..3 days ahead
TRAIN_DATE_FRACTION = 0.8   # distinct-date cut used to fit normalization
TRAIN_SAMPLE_FRACTION = 0.8 # positional cut of the windowed dataset
DEFAULT_FEATURE_SET = "simple"

# Header keywords, matched case-insensitively as substrings (first match wins)
COLUMN_KEYWORDS = {
    "date": "date",
    "track_id": "track",
    "streams": "stream",
    "danceability": "danceability",
    "energy": "energy",
    "valence": "valence",
    "acousticness": "acousticness",
}
REQUIRED_FOR_ROW = ("date", "track_id", "streams", "danceability", "energy")
NUMERIC_COLUMNS = ("streams", "danceability", "energy", "valence", "acousticness")

# ---------------------------------------------------------------------------
# GRU hyperparameters
# ---------------------------------------------------------------------------
GRU_UNITS = (128, 64)
GRU_DROPOUT = 0.3
DENSE_UNITS = (128, 64, 32)
DENSE_DROPOUT = (0.4, 0.3, 0.2)
GRU_LR = 1e-3
GRU_WEIGHT_DECAY = 1e-3     # L2 penalty
GRU_PATIENCE = 25
GRU_MIN_DELTA = 1e-3
GRU_LR_STEP = 30            # halve the learning rate every 30 epochs
GRU_LR_GAMMA = 0.5
GRU_SEED = 42
GRU_LOG_EVERY = 10

TRAINING_PRESETS = {
    "standard": {"epochs": 100, "batch_size": 32},
    "advanced": {"epochs": 200, "batch_size": 64},
}

# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
DECISION_THRESHOLD = 0.5
UNCERTAINTY_SAMPLES = 3
TOP_BREAKOUTS = 3
TOP_HIT_TRACKS = 5

# (min breakout score, min confidence, level); first satisfied row wins
RISK_LEVELS = [
    (0.10, 0.70, "low"),
    (0.05, 0.60, "medium"),
    (0.0, None, "high"),
]
FALLBACK_RISK_LEVEL = "very-high"

HIT_POTENTIAL_TIERS = [
    (75.0, "HIGH POTENTIAL"),
    (65.0, "MEDIUM POTENTIAL"),
]
FALLBACK_HIT_POTENTIAL = "LOW POTENTIAL"

PERFORMANCE_TIERS = [
    (75.0, "outstanding", "Outstanding! Model achieved {acc:.1f}% accuracy - Excellent performance!"),
    (70.0, "very-good", "Very Good! Model achieved {acc:.1f}% accuracy - Strong performance!"),
    (65.0, "good", "Good! Model achieved {acc:.1f}% accuracy - Decent performance."),
    (60.0, "fair", "Fair! Model achieved {acc:.1f}% accuracy - Room for improvement."),
]
FALLBACK_PERFORMANCE = (
    "needs-improvement",
    "Needs improvement! Model achieved {acc:.1f}% accuracy - Consider advanced training.",
)


def training_preset(name: str) -> dict:
    """Return epochs/batch size for a named training preset."""
    if name not in TRAINING_PRESETS:
        raise ValueError(f"Unknown training preset '{name}', "
                         f"expected one of {sorted(TRAINING_PRESETS)}")
    return dict(TRAINING_PRESETS[name])
