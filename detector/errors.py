class DetectorError(Exception):
    """Base class for every error raised by the detector package."""


class DatasetError(DetectorError):
    """The dataset is missing, malformed, empty or below the training minimum."""


class ImagePreprocessingError(DetectorError):
    """An image could not be decoded or preprocessed."""


class ModelLoadError(DetectorError):
    """The model artifact exists but could not be deserialized."""


class TrainingInProgressError(DetectorError):
    """A training run is already queued or running."""
