"""
network.py
~~~~~~~~~~

Multi-layer perceptron trained with mini-batch backpropagation and
momentum.

A :class:`Network` owns an ordered list of :class:`Layer` objects plus the
input buffer. Every buffer is allocated once, at construction, sized by
the batch size and the layer widths, and then updated in place by
:meth:`Network.forward` and :meth:`Network.backward`.

Samples are rows everywhere except in the per-layer ``errors`` and
``derivative`` buffers, which hold one sample per column.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .activations import Activation, make_activation
from .config import MOMENTUM_MODES, LayerWeights, NetworkConfig
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
    WeightMismatchError,
)
from .numeric import as_matrix, make_rng, mean_squared_error, random_uniform

# Configure module logger
logger = logging.getLogger(__name__)


class Layer:
    """
    One affine + activation stage.

    Attributes:
        width: Number of nodes
        activation: Shared, stateless activation strategy
        nodes: ``batch_size x width`` activated outputs of the last forward
        weights: ``prev_width x width``
        bias_weights: ``width``, added to every row of ``nodes``
        delta_weights: ``width x prev_width`` gradient (trainable only)
        delta_weights_prev: ``width x prev_width`` momentum term (trainable only)
        errors: ``width x batch_size`` error signal (trainable only)
        derivative: ``width x batch_size`` derivative scratch (trainable only)
    """

    def __init__(
        self,
        width: int,
        prev_width: int,
        batch_size: int,
        activation: Activation,
        weights: np.ndarray,
        bias: np.ndarray,
        trainable: bool
    ):
        self.width = width
        self.activation = activation
        self.nodes = np.zeros((batch_size, width))
        self.weights = weights
        self.bias_weights = bias

        self.delta_weights: Optional[np.ndarray] = None
        self.delta_weights_prev: Optional[np.ndarray] = None
        self.errors: Optional[np.ndarray] = None
        self.derivative: Optional[np.ndarray] = None
        if trainable:
            self.delta_weights = np.zeros((width, prev_width))
            self.delta_weights_prev = np.zeros((width, prev_width))
            self.errors = np.zeros((width, batch_size))
            self.derivative = np.zeros((width, batch_size))

    def __repr__(self) -> str:
        return f"Layer(width={self.width}, activation={self.activation!r})"


def _resolve_activations(config: NetworkConfig) -> List[Activation]:
    # One instance per kind, shared by every layer using it.
    shared: Dict[str, Activation] = {}
    resolved = []
    for name in config.activations:
        if name not in shared:
            shared[name] = make_activation(name, config.split_factor)
        resolved.append(shared[name])
    return resolved


def validate_config(config: NetworkConfig) -> List[Activation]:
    """
    Run every construction check, in order, before anything is allocated.

    Args:
        config: Network description

    Returns:
        The activation strategy of each non-input layer

    Raises:
        LayersCountError: Fewer than two node counts
        ActivationCountError: Activation count != layer count
        BatchSizeError: Non-positive batch size
        PositiveValueError: A node count or the split factor below 1
        UnknownActivationError: An activation name that isn't known
        WeightMismatchError: Imported weights that don't fit the topology
        DimensionMismatchError: A split factor that doesn't divide its layer
        ValueError: Unknown momentum mode
    """
    node_counts = list(config.node_counts)
    if len(node_counts) < 2:
        raise LayersCountError(f"got {len(node_counts)} node count(s)")
    if len(config.activations) != len(node_counts) - 1:
        raise ActivationCountError(
            f"{len(config.activations)} activation(s) for "
            f"{len(node_counts) - 1} layer(s)"
        )
    if config.batch_size <= 0:
        raise BatchSizeError(f"batch_size={config.batch_size}")
    for count in node_counts:
        if count < 1:
            raise PositiveValueError(f"node count {count}")
    if config.split_factor < 1:
        raise PositiveValueError(f"split factor {config.split_factor}")

    activations = _resolve_activations(config)
    for activation, width in zip(activations, node_counts[1:]):
        activation.validate_width(width)

    if config.imported_weights is not None:
        if len(config.imported_weights) != len(node_counts) - 1:
            raise WeightMismatchError(
                f"{len(config.imported_weights)} imported layer(s) for "
                f"{len(node_counts) - 1} layer(s)"
            )
        for index, layer_weights in enumerate(config.imported_weights):
            prev_width, width = node_counts[index], node_counts[index + 1]
            if len(layer_weights.weights) != prev_width * width:
                raise WeightMismatchError(
                    f"layer {index}: {len(layer_weights.weights)} weights, "
                    f"expected {prev_width * width}"
                )
            if len(layer_weights.bias) != width:
                raise WeightMismatchError(
                    f"layer {index}: {len(layer_weights.bias)} biases, "
                    f"expected {width}"
                )

    if config.momentum_mode not in MOMENTUM_MODES:
        raise ValueError(
            f"momentum_mode must be one of {MOMENTUM_MODES}, "
            f"got {config.momentum_mode!r}"
        )
    return activations


class Network:
    """
    Feed-forward network with a fixed batch size.

    Typical use::

        net = Network.create([3, 10, 2], ['tanh', 'softmax'], batch_size=3)
        net.learn_rate = 0.1
        net.forward(inputs)
        net.backward(targets)

    ``forward`` may be called any number of times in a row; ``backward``
    works on the values left by the latest ``forward``.

    A network is not thread-safe: its buffers belong to a single caller and
    concurrent ``forward``/``backward`` calls must be serialized by that
    caller.
    """

    def __init__(self, config: NetworkConfig):
        activations = validate_config(config)

        self.node_counts: List[int] = list(config.node_counts)
        self.activation_names: List[str] = list(config.activations)
        self.split_factor = config.split_factor
        self.batch_size = config.batch_size
        self.input_width = self.node_counts[0]
        self.output_layer_index = len(self.node_counts) - 2
        self.is_trainable = config.trainable
        self.learn_rate = config.learn_rate
        self.momentum = config.momentum
        self.momentum_mode = config.momentum_mode

        self.input = np.zeros((self.batch_size, self.input_width))
        self.target: Optional[np.ndarray] = None
        if self.is_trainable:
            self.target = np.zeros((self.batch_size, self.node_counts[-1]))

        rng = None
        if config.imported_weights is None:
            rng = make_rng(config.seed)

        self.layers: List[Layer] = []
        for index, activation in enumerate(activations):
            prev_width = self.node_counts[index]
            width = self.node_counts[index + 1]
            if rng is None:
                imported = config.imported_weights[index]
                weights = np.array(imported.weights, dtype=np.float64).reshape(prev_width, width)
                bias = np.array(imported.bias, dtype=np.float64)
            else:
                weights = random_uniform(rng, (prev_width, width))
                bias = random_uniform(rng, (width,))
            self.layers.append(Layer(
                width,
                prev_width,
                self.batch_size,
                activation,
                weights,
                bias,
                self.is_trainable
            ))

        logger.debug(
            f"Created network {self.node_counts} with activations "
            f"{self.activation_names}, batch_size={self.batch_size}, "
            f"trainable={self.is_trainable}"
        )

    @classmethod
    def create(
        cls,
        node_counts: Sequence[int],
        activations: Sequence[str],
        batch_size: int = 1,
        trainable: bool = True,
        **options: Any
    ) -> 'Network':
        """
        Shortcut for ``Network(NetworkConfig(...))``.

        Extra keyword arguments are passed to :class:`NetworkConfig`.
        """
        return cls(NetworkConfig(
            node_counts=list(node_counts),
            activations=list(activations),
            batch_size=batch_size,
            trainable=trainable,
            **options
        ))

    @property
    def output_layer(self) -> Layer:
        return self.layers[self.output_layer_index]

    def __repr__(self) -> str:
        return (
            f"Network(node_counts={self.node_counts}, "
            f"activations={self.activation_names}, "
            f"batch_size={self.batch_size}, trainable={self.is_trainable})"
        )

    # ========================================================================
    # FORWARD / BACKWARD
    # ========================================================================

    def _as_batch(self, rows: Sequence[Sequence[float]], width: int) -> np.ndarray:
        if len(rows) > self.batch_size:
            raise BatchOverflowError(
                f"{len(rows)} rows for batch_size {self.batch_size}"
            )
        batch = as_matrix(rows)
        if batch.size == 0:
            batch = batch.reshape(0, width)
        if batch.ndim != 2 or batch.shape[1] != width:
            raise DimensionMismatchError(
                f"expected rows of {width} values, got shape {batch.shape}"
            )
        return batch

    def forward(self, batch_rows: Sequence[Sequence[float]]) -> None:
        """
        Run a batch of input rows through every layer.

        Fewer rows than ``batch_size`` may be given: only the leading rows of
        the input buffer are overwritten and the remaining rows keep the
        values of earlier calls, so their outputs are recomputed from those
        older inputs.

        Args:
            batch_rows: At most ``batch_size`` rows of ``input_width`` values

        Raises:
            BatchOverflowError: More rows than ``batch_size``
            DimensionMismatchError: A row of the wrong width
        """
        batch = self._as_batch(batch_rows, self.input_width)
        self.input[:len(batch)] = batch

        previous = self.input
        for layer in self.layers:
            np.matmul(previous, layer.weights, out=layer.nodes)
            layer.nodes += layer.bias_weights
            layer.activation.apply(layer.nodes, layer.nodes)
            previous = layer.nodes

    def backward(self, batch_targets: Sequence[Sequence[float]]) -> None:
        """
        Backpropagate the error against ``batch_targets`` and update weights.

        Per layer, from the output down: the activation turns the incoming
        error into the layer's error signal, the gradient is the error times
        the previous layer's outputs scaled by ``learn_rate``, every error
        column is added to the bias unscaled, and momentum is applied. The
        weights of all layers are updated once the pass is complete.

        Targets follow the same partial-batch rule as :meth:`forward`: rows
        not given keep the targets of earlier calls.

        Raises:
            NotTrainableError: The network was built with ``trainable=False``
            BatchOverflowError: More rows than ``batch_size``
            LearnRateError: ``learn_rate`` is not above zero
            DimensionMismatchError: A target row of the wrong width
        """
        if not self.is_trainable:
            raise NotTrainableError()
        if len(batch_targets) > self.batch_size:
            raise BatchOverflowError(
                f"{len(batch_targets)} rows for batch_size {self.batch_size}"
            )
        if self.learn_rate <= 0.0:
            raise LearnRateError(f"learn_rate={self.learn_rate}")

        targets = self._as_batch(batch_targets, self.node_counts[-1])
        self.target[:len(targets)] = targets

        output = self.output_layer
        np.subtract(self.target.T, output.nodes.T, out=output.errors)

        for index in range(self.output_layer_index, -1, -1):
            layer = self.layers[index]
            layer.activation.backpropagate_error(self, index)

            previous = self.input if index == 0 else self.layers[index - 1].nodes
            np.matmul(layer.errors, previous, out=layer.delta_weights)
            layer.delta_weights *= self.learn_rate

            layer.bias_weights += layer.errors.sum(axis=1)
            self._apply_momentum(layer)

        for layer in reversed(self.layers):
            layer.weights += layer.delta_weights.T

    def _apply_momentum(self, layer: Layer) -> None:
        if self.momentum_mode == "classic":
            # Carry the previous applied update into this one.
            layer.delta_weights += self.momentum * layer.delta_weights_prev
            layer.delta_weights_prev[...] = layer.delta_weights
        elif self.momentum > 0:
            # The carried term is a scaled copy of the current gradient.
            np.multiply(layer.delta_weights, self.momentum, out=layer.delta_weights_prev)
            layer.delta_weights += layer.delta_weights_prev

    # ========================================================================
    # OUTPUTS
    # ========================================================================

    def get_output(self) -> List[List[float]]:
        """Return all ``batch_size`` rows of the output layer."""
        return self.output_layer.nodes.tolist()

    def get_loss(self, batch_targets: Sequence[Sequence[float]]) -> float:
        """
        Loss of the output layer as defined by its activation.

        Cross-entropy for softmax outputs, 0.0 for tanh and sigmoid outputs.
        ``batch_targets`` must have ``batch_size`` rows.
        """
        output = self.output_layer
        return output.activation.layer_loss(output.nodes, batch_targets)

    def get_mse(self, batch_targets: Sequence[Sequence[float]]) -> float:
        """Mean squared error of the output, averaged over ``batch_size`` rows."""
        return mean_squared_error(self.output_layer.nodes, batch_targets)

    # ========================================================================
    # EXPORT / IMPORT
    # ========================================================================

    def export_state(self) -> Dict[str, Any]:
        """
        Snapshot the topology and weights as plain JSON-compatible data.

        Batch size and trainability are runtime choices and are not part of
        the snapshot.
        """
        return {
            'node_counts': list(self.node_counts),
            'activations': list(self.activation_names),
            'split_factor': self.split_factor,
            'layers': [
                LayerWeights(
                    weights=layer.weights.ravel().tolist(),
                    bias=layer.bias_weights.tolist()
                ).to_dict()
                for layer in self.layers
            ]
        }

    @classmethod
    def import_state(
        cls,
        state: Dict[str, Any],
        batch_size: int = 1,
        trainable: bool = False
    ) -> 'Network':
        """
        Rebuild a network from :meth:`export_state` output.

        Args:
            state: Snapshot produced by :meth:`export_state`
            batch_size: Batch size of the new network
            trainable: Whether the new network supports ``backward``

        Returns:
            Network with the snapshot's topology and weights

        Raises:
            LayerMismatchError: Layer count disagrees with the topology
            DimensionMismatchError: A weight or bias array of the wrong size
            NetworkError: Missing fields, or any construction error
        """
        try:
            node_counts = [int(count) for count in state['node_counts']]
            activations = list(state['activations'])
            layers = [LayerWeights.from_dict(layer) for layer in state['layers']]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"malformed network state: {e!r}") from e

        if len(layers) != len(node_counts) - 1:
            raise LayerMismatchError(
                f"{len(layers)} layer(s) stored for topology {node_counts}"
            )
        for index, layer in enumerate(layers):
            prev_width, width = node_counts[index], node_counts[index + 1]
            if len(layer.weights) != prev_width * width:
                raise DimensionMismatchError(
                    f"layer {index}: {len(layer.weights)} weights stored, "
                    f"expected {prev_width * width}"
                )
            if len(layer.bias) != width:
                raise DimensionMismatchError(
                    f"layer {index}: {len(layer.bias)} biases stored, "
                    f"expected {width}"
                )

        network = cls(NetworkConfig(
            node_counts=node_counts,
            activations=activations,
            batch_size=batch_size,
            trainable=trainable,
            split_factor=int(state.get('split_factor', 1)),
            imported_weights=layers
        ))
        logger.debug(f"Imported network {node_counts}")
        return network

    def export_json(self, path: str) -> None:
        """Write :meth:`export_state` to ``path`` as a JSON document."""
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.export_state(), f, indent=2)
        logger.info(f"Exported network {self.node_counts} to {path}")

    @classmethod
    def import_json(
        cls,
        path: str,
        batch_size: int = 1,
        trainable: bool = False
    ) -> 'Network':
        """Read a JSON document written by :meth:`export_json`."""
        with open(path, encoding='utf-8') as f:
            state = json.load(f)
        network = cls.import_state(state, batch_size, trainable)
        logger.info(f"Imported network {network.node_counts} from {path}")
        return network
