"""
errors.py
~~~~~~~~~

Exception taxonomy for network construction, training calls and
persistence.

Every check raises its own class so callers (and tests) can tell exactly
which validation failed. All classes derive from :class:`NetworkError`,
itself a ``ValueError``.
"""


class NetworkError(ValueError):
    """Base class for every validation or precondition failure."""

    default_message = "[ERROR] Network error"

    def __init__(self, detail: str = ""):
        message = self.default_message
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.detail = detail


# ============================================================================
# CONSTRUCTION
# ============================================================================

class LayersCountError(NetworkError):
    default_message = "[ERROR] The number of layers should be greater than 1"


class ActivationCountError(NetworkError):
    default_message = (
        "[ERROR] The number of layers do not match the activation functions"
    )


class BatchSizeError(NetworkError):
    default_message = "[ERROR] BatchSize should be bigger than 0"


class PositiveValueError(NetworkError):
    default_message = "[ERROR] All values have to be positive values"


class UnknownActivationError(NetworkError):
    default_message = "[ERROR] Unknown activation function"


class WeightMismatchError(NetworkError):
    default_message = "[ERROR] Imported weights do not match the topology"


# ============================================================================
# CALL TIME
# ============================================================================

class BatchOverflowError(NetworkError):
    default_message = "[ERROR] The input values don't match the batchSize"


class NotTrainableError(NetworkError):
    default_message = "[ERROR] Network does not support training"


class LearnRateError(NetworkError):
    default_message = "[ERROR] Set the network's learn rate. learn_rate > 0"


class DimensionMismatchError(NetworkError):
    default_message = "[ERROR] Dimensions mismatch"


# ============================================================================
# IMPORT / EXPORT
# ============================================================================

class LayerMismatchError(NetworkError):
    default_message = "[ERROR] Network Layers mismatch"
