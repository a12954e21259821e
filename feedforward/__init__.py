"""
feedforward package
~~~~~~~~~~~~~~~~~~~

Small feed-forward neural network engine: multi-layer perceptrons built from
layer sizes and activation names, mini-batch inference, backpropagation with
momentum, and JSON/SQLite persistence of trained networks.
"""

from .activations import (
    Activation,
    Sigmoid,
    Softmax,
    SplitSoftmax,
    Tanh,
    make_activation,
)
from .config import LayerWeights, NetworkConfig
from .errors import (
    ActivationCountError,
    BatchOverflowError,
    BatchSizeError,
    DimensionMismatchError,
    LayerMismatchError,
    LayersCountError,
    LearnRateError,
    NetworkError,
    NotTrainableError,
    PositiveValueError,
    UnknownActivationError,
    WeightMismatchError,
)
from .network import Layer, Network

__version__ = "1.0.0"

__all__ = [
    "Activation",
    "ActivationCountError",
    "BatchOverflowError",
    "BatchSizeError",
    "DimensionMismatchError",
    "Layer",
    "LayerMismatchError",
    "LayerWeights",
    "LayersCountError",
    "LearnRateError",
    "Network",
    "NetworkConfig",
    "NetworkError",
    "NotTrainableError",
    "PositiveValueError",
    "Sigmoid",
    "Softmax",
    "SplitSoftmax",
    "Tanh",
    "UnknownActivationError",
    "WeightMismatchError",
    "make_activation",
]
