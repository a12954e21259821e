"""
activations.py
~~~~~~~~~~~~~~

Activation strategies for network layers.

Each kind (tanh, sigmoid, softmax, split softmax) is a small stateless
class exposing the same three capabilities:

- ``apply``: the function or its derivative, optionally written transposed
- ``backpropagate_error``: scale a layer's error signal by the derivative
- ``layer_loss``: scalar loss of an output layer against targets

Instances are built by :func:`make_activation` and shared between layers
of the same kind.
"""

from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, Sequence, Type

import numpy as np

from .errors import (
    DimensionMismatchError,
    PositiveValueError,
    UnknownActivationError,
)
from .numeric import (
    SMALLEST_POSITIVE,
    as_matrix,
    prevent_overflow,
    safe_divide,
    safe_exp,
)

if TYPE_CHECKING:
    from .network import Network


class Activation:
    """Base class implementing the shared apply/backprop plumbing."""

    name = ""

    def _activate(self, rows: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _derivative(self, rows: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def validate_width(self, width: int) -> None:
        """Check that this activation can run on a layer of ``width`` nodes."""

    def apply(
        self,
        inp: np.ndarray,
        out: np.ndarray,
        derivative: bool = False,
        transpose: bool = False
    ) -> None:
        """
        Evaluate the activation (or its derivative) row by row.

        ``inp`` and ``out`` may be the same array: the full result is
        computed before anything is written to ``out``.

        Args:
            inp: Matrix whose rows are samples
            out: Destination; same shape as ``inp``, or its transpose when
                ``transpose`` is set (row ``i`` of the result becomes
                column ``i`` of ``out``)
            derivative: Evaluate the derivative from post-activation values
            transpose: Write the result transposed

        Raises:
            DimensionMismatchError: If the shapes don't fit the requested mode
        """
        expected = inp.shape[::-1] if transpose else inp.shape
        if out.shape != expected:
            raise DimensionMismatchError(
                f"{self.name}: input {inp.shape} cannot be written to "
                f"{out.shape} (transpose={transpose})"
            )
        self.validate_width(inp.shape[1])

        if derivative:
            result = self._derivative(inp)
        else:
            result = self._activate(inp)

        if transpose:
            out[...] = result.T
        else:
            out[...] = result

    def backpropagate_error(self, network: 'Network', layer_index: int) -> None:
        """
        Turn the error arriving at a layer into its local error signal.

        Hidden layers first receive the next layer's error through that
        layer's weights; every layer then scales it element-wise by its
        activation derivative.
        """
        layer = network.layers[layer_index]
        if layer_index != network.output_layer_index:
            upper = network.layers[layer_index + 1]
            np.matmul(upper.weights, upper.errors, out=layer.errors)
        self.apply(layer.nodes, layer.derivative, derivative=True, transpose=True)
        layer.errors *= layer.derivative

    def layer_loss(
        self,
        output: np.ndarray,
        target: Sequence[Sequence[float]]
    ) -> float:
        # Not defined for this kind.
        return 0.0

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and vars(self) == vars(other)

    def __hash__(self) -> int:
        return hash((type(self), tuple(sorted(vars(self).items()))))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Tanh(Activation):
    """
    Rational approximation of the hyperbolic tangent.

    Saturates to exactly +/-1 beyond |v| > 3, otherwise
    ``v * (27 + v^2) / (27 + 9 v^2)``, which also reaches +/-1 at +/-3.
    """

    name = "tanh"

    def _activate(self, rows: np.ndarray) -> np.ndarray:
        clipped = np.clip(rows, -3.0, 3.0)
        sq = clipped * clipped
        return clipped * (27.0 + sq) / (27.0 + 9.0 * sq)

    def _derivative(self, rows: np.ndarray) -> np.ndarray:
        return 1.0 - rows * rows


class Sigmoid(Activation):
    name = "sigmoid"

    def _activate(self, rows: np.ndarray) -> np.ndarray:
        return 1.0 / (1.0 + safe_exp(-rows))

    def _derivative(self, rows: np.ndarray) -> np.ndarray:
        return rows * (1.0 - rows)


class Softmax(Activation):
    """
    Row-wise softmax: one probability distribution per sample.

    Inputs are clamped to the finite range of ``exp`` and shifted by the
    row maximum before exponentiating, so the denominator is never below 1
    and the output never contains inf or NaN.
    """

    name = "softmax"

    @staticmethod
    def _normalize(rows: np.ndarray) -> np.ndarray:
        clamped = prevent_overflow(rows)
        exps = safe_exp(clamped - np.max(clamped, axis=-1, keepdims=True))
        return safe_divide(exps, np.sum(exps, axis=-1, keepdims=True))

    def _activate(self, rows: np.ndarray) -> np.ndarray:
        return self._normalize(rows)

    def _derivative(self, rows: np.ndarray) -> np.ndarray:
        # Diagonal of the Jacobian, from post-activation probabilities.
        return rows * (1.0 - rows)

    def layer_loss(
        self,
        output: np.ndarray,
        target: Sequence[Sequence[float]]
    ) -> float:
        """
        Cross-entropy averaged over the batch.

        For every row, each class whose target is exactly 1.0 contributes
        ``-ln(p)``. Probabilities that underflowed to 0 are read as the
        smallest positive double so the loss stays finite.

        Raises:
            DimensionMismatchError: If target and output shapes differ
        """
        target_array = as_matrix(target)
        if target_array.ndim != 2 or target_array.shape[0] != output.shape[0]:
            raise DimensionMismatchError(
                f"target rows {target_array.shape[0] if target_array.ndim else 0} "
                f"!= output rows {output.shape[0]}"
            )
        if target_array.shape[1] != output.shape[1]:
            raise DimensionMismatchError(
                f"target width {target_array.shape[1]} != output width {output.shape[1]}"
            )
        hits = target_array == 1.0
        probabilities = np.maximum(output[hits], SMALLEST_POSITIVE)
        return float(-np.sum(np.log(probabilities)) / output.shape[0])


class SplitSoftmax(Softmax):
    """
    Softmax applied independently to ``split_factor`` equal slices of a row.

    A layer of width 6 with a split factor of 3 holds three independent
    two-class distributions.
    """

    name = "split_softmax"

    def __init__(self, split_factor: int = 1):
        if split_factor < 1:
            raise PositiveValueError(f"split factor {split_factor}")
        self.split_factor = split_factor

    def validate_width(self, width: int) -> None:
        if width % self.split_factor:
            raise DimensionMismatchError(
                f"split factor {self.split_factor} does not divide layer width {width}"
            )

    def _activate(self, rows: np.ndarray) -> np.ndarray:
        slices = rows.reshape(rows.shape[0], self.split_factor, -1)
        return self._normalize(slices).reshape(rows.shape)

    def __repr__(self) -> str:
        return f"SplitSoftmax(split_factor={self.split_factor})"


ACTIVATIONS: Mapping[str, Type[Activation]] = MappingProxyType({
    Tanh.name: Tanh,
    Sigmoid.name: Sigmoid,
    Softmax.name: Softmax,
    SplitSoftmax.name: SplitSoftmax,
})


def make_activation(name: str, split_factor: int = 1) -> Activation:
    """
    Build the activation strategy registered under ``name``.

    Args:
        name: One of ``tanh``, ``sigmoid``, ``softmax``, ``split_softmax``
        split_factor: Number of slices, used only by ``split_softmax``

    Returns:
        Activation instance

    Raises:
        UnknownActivationError: If the name is not known
        PositiveValueError: If ``split_factor`` is below 1 for split softmax
    """
    try:
        activation_cls = ACTIVATIONS[name]
    except (KeyError, TypeError):
        raise UnknownActivationError(repr(name)) from None
    if activation_cls is SplitSoftmax:
        return SplitSoftmax(split_factor)
    return activation_cls()
