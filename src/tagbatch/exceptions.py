"""Custom exceptions for batch tag detection."""


class TagBatchError(Exception):
    """Base tagbatch exception."""


class ConfigError(TagBatchError):
    """Raised when the batch configuration is missing, unreadable or invalid."""


class InputDirectoryError(TagBatchError):
    """Raised when the input location does not exist or is not a directory."""


class OutputDirectoryError(TagBatchError):
    """Raised when the output location cannot be created."""


class DuplicateOutputError(TagBatchError):
    """Raised when two accepted input files would write the same result file."""


class ImageLoadError(TagBatchError):
    """Raised when an image file cannot be read or decoded."""


class ColorConversionError(ImageLoadError):
    """Raised when a decoded image cannot be reduced to one intensity channel."""


class FamilyDetectionError(TagBatchError):
    """Raised when detection for one family fails on one image."""

    def __init__(self, family: str, image: str, message: str, initialization_ms: float = 0.0):
        super().__init__(f"Failed to decode tags for family {family} in {image}: {message}")
        self.family = family
        self.image = image
        # Decoder construction time spent before the failure
        self.initialization_ms = initialization_ms


class UnknownFamilyError(TagBatchError):
    """Raised when the decoder reports a family selector the registry does not know."""


class DetectionContractError(TagBatchError):
    """Raised when a raw detection violates the id range or corner-count contract."""


class OutputWriteError(TagBatchError):
    """Raised when a result or manifest file cannot be written."""
