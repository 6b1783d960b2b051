"""Exceptions raised by the airway generation labeling package."""


class AirwayLabelingError(Exception):
    """Base class for every error raised on purpose by this package."""


class ConfigurationError(AirwayLabelingError):
    """A configuration value is out of range or inconsistent."""


class MalformedInputError(AirwayLabelingError):
    """A statistics row or a particle array could not be interpreted."""


class ModelCoverageError(AirwayLabelingError):
    """No generation state has both emission and transition support."""
