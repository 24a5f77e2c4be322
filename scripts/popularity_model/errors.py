"""Error taxonomy for the forecasting pipeline."""


class PopularityError(Exception):
    """Base class for all pipeline failures."""


class ParseError(PopularityError):
    """Raised when the CSV input is malformed or unreadable."""


class ValidationError(PopularityError):
    """Raised when a dataset tensor contains NaN values."""


class StateError(PopularityError):
    """Raised when an operation is requested before its prerequisite step."""


class ComputationError(PopularityError):
    """Raised on unexpected failures inside feature-importance or breakout analysis."""
