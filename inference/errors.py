"""Exception types for the inference layer.

Only configuration failures (no model loaded, no API key) propagate to
callers. Decode failures are raised inside the engine worker and captured
into a ``GenerationResult`` before they reach the agent loop.
"""


class HearthInferenceError(Exception):
    """Base class for inference errors."""
    pass


class ModelNotLoadedError(HearthInferenceError):
    """Raised when an operation needs a model and none is loaded."""

    def __init__(self, message: str = "Model not loaded"):
        super().__init__(message)


class ModelLoadError(HearthInferenceError):
    """Raised when the backend cannot open the model file."""
    pass


class DecodeError(HearthInferenceError):
    """Native decode failed; the current generation is abandoned."""
    pass


class ContextOverflowError(DecodeError):
    """A context shift could not free room for the next batch."""
    pass


class CloudInferenceError(HearthInferenceError):
    """Any failure talking to a cloud provider, including a missing key."""
    pass
