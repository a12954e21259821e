"""Configuration dataclasses describing how a network is built."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

MOMENTUM_MODES = ("literal", "classic")


@dataclass
class LayerWeights:
    """
    Weights of one layer as flat lists.

    Parameters
    ----------
    weights:
        Row-major ``prev_width * width`` values; row ``r`` holds the weights
        leaving node ``r`` of the previous layer.
    bias:
        One bias per node of the layer.
    """

    weights: List[float]
    bias: List[float]

    def to_dict(self) -> Dict[str, List[float]]:
        return {'weights': list(self.weights), 'bias': list(self.bias)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LayerWeights':
        return cls(weights=list(data['weights']), bias=list(data['bias']))


@dataclass
class NetworkConfig:
    """
    Everything needed to construct a :class:`~feedforward.network.Network`.

    Parameters
    ----------
    node_counts:
        Width of every layer, input layer first. At least two entries.
    activations:
        One activation name per non-input layer.
    batch_size:
        Maximum number of rows per forward/backward call. Buffers are sized
        by it once, at construction.
    trainable:
        When false the gradient, momentum, error and derivative buffers are
        not allocated and ``backward`` is refused.
    split_factor:
        Number of independent distributions per row for ``split_softmax``
        layers. Must divide the width of those layers.
    imported_weights:
        Optional weights per non-input layer. Random weights in [-1, 1] are
        drawn when omitted.
    learn_rate:
        Initial learn rate. Must be set above zero before ``backward``.
    momentum:
        Initial momentum factor; 0 disables momentum.
    momentum_mode:
        ``"literal"`` adds ``momentum`` times the current gradient to itself;
        ``"classic"`` carries the previous applied update forward.
    seed:
        Seed for a private random generator. The shared process generator is
        used when omitted.
    """

    node_counts: List[int]
    activations: List[str]
    batch_size: int = 1
    trainable: bool = True
    split_factor: int = 1
    imported_weights: Optional[List[LayerWeights]] = None
    learn_rate: float = 0.0
    momentum: float = 0.0
    momentum_mode: str = "literal"
    seed: Optional[int] = None
