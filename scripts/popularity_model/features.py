"""Closed set of per-track features and their fixed metadata."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class FeatureInfo:
    name: str
    column: str
    description: str

    @property
    def normalized_column(self):
        return f"{self.column}_normalized"


class Feature(Enum):
    STREAMS = FeatureInfo(
        "Streams", "streams",
        "Historical streaming patterns - most important for trend prediction")
    DANCEABILITY = FeatureInfo(
        "Danceability", "danceability",
        "Musical rhythm and dance-friendly characteristics")
    ENERGY = FeatureInfo(
        "Energy", "energy",
        "Intensity and activity level of the track")
    VALENCE = FeatureInfo(
        "Valence", "valence",
        "Musical positiveness and mood")
    ACOUSTICNESS = FeatureInfo(
        "Acousticness", "acousticness",
        "Acoustic vs electronic composition")
    MOMENTUM = FeatureInfo(
        "Momentum", "streams_momentum",
        "Daily change in streaming numbers")
    GROWTH_RATE = FeatureInfo(
        "Growth Rate", "streams_growth",
        "Percentage growth from previous day")
    MOVING_AVERAGE = FeatureInfo(
        "Moving Avg", "streams_ma3",
        "3-day average streaming pattern")
    VOLATILITY = FeatureInfo(
        "Volatility", "streams_volatility",
        "Daily streaming variability")

    @property
    def info(self) -> FeatureInfo:
        return self.value

    @property
    def column(self) -> str:
        return self.value.column

    @property
    def normalized_column(self) -> str:
        return self.value.normalized_column


SIMPLE_FEATURES = (
    Feature.STREAMS,
    Feature.DANCEABILITY,
    Feature.ENERGY,
    Feature.MOMENTUM,
    Feature.MOVING_AVERAGE,
)
ADVANCED_FEATURES = tuple(Feature)
assert len(SIMPLE_FEATURES) == 5
assert len(ADVANCED_FEATURES) == 9

FEATURE_SETS = {
    "simple": SIMPLE_FEATURES,
    "advanced": ADVANCED_FEATURES,
}


def feature_set(name):
    """Look up a named feature configuration ("simple" or "advanced")."""
    try:
        return FEATURE_SETS[name]
    except KeyError:
        raise ValueError(f"Unknown feature set '{name}', "
                         f"expected one of {sorted(FEATURE_SETS)}") from None
