"""
numeric.py
~~~~~~~~~~

Floating-point guards and small helpers shared by the activations and
the network: clamped exponentials, NaN-safe division, weight seeding and
the mean squared error.
"""

from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import DimensionMismatchError

# Largest / smallest arguments for which exp() neither overflows to inf
# nor underflows below the smallest subnormal double.
EXP_MAX = 709.782712893384
EXP_MIN = -745.1332191019411

# Smallest representable positive double (subnormal).
SMALLEST_POSITIVE = 5e-324

# Created once per process. Networks never reseed it.
_process_rng: Optional[np.random.Generator] = None


def process_rng() -> np.random.Generator:
    """Return the process-wide random generator, creating it on first use."""
    global _process_rng
    if _process_rng is None:
        _process_rng = np.random.default_rng()
    return _process_rng


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """
    Pick the random source for weight initialization.

    Args:
        seed: Explicit seed for a reproducible, private generator. When
            None the shared process generator is used.

    Returns:
        numpy.random.Generator
    """
    if seed is None:
        return process_rng()
    return np.random.default_rng(seed)


def random_uniform(
    rng: np.random.Generator,
    shape: Tuple[int, ...],
    low: float = -1.0,
    high: float = 1.0
) -> np.ndarray:
    return rng.uniform(low, high, size=shape)


def prevent_overflow(values: np.ndarray) -> np.ndarray:
    """Clamp values into the range where ``exp`` stays finite and nonzero."""
    return np.clip(values, EXP_MIN, EXP_MAX)


def safe_exp(values: np.ndarray) -> np.ndarray:
    return np.exp(prevent_overflow(values))


def safe_divide(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """
    Element-wise division that never yields NaN.

    A 0/0 (or inf/inf) result is replaced with the smallest positive
    double instead of propagating NaN into later layers.
    """
    with np.errstate(divide='ignore', invalid='ignore'):
        result = np.divide(numerator, denominator)
    result[np.isnan(result)] = SMALLEST_POSITIVE
    return result


def as_matrix(values: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Convert nested rows to a float64 array.

    Raises:
        DimensionMismatchError: If the rows have different lengths or hold
            non-numeric values
    """
    try:
        return np.asarray(values, dtype=np.float64)
    except ValueError:
        raise DimensionMismatchError("rows are not a rectangular numeric matrix") from None


def mean_squared_error(
    output: np.ndarray,
    target: Sequence[Sequence[float]]
) -> float:
    """
    Sum of squared differences averaged over the rows of ``output``.

    Raises:
        DimensionMismatchError: If the target shape differs from the output
    """
    target_array = as_matrix(target)
    if target_array.shape != output.shape:
        raise DimensionMismatchError(
            f"target shape {target_array.shape} != output shape {output.shape}"
        )
    return float(np.sum((output - target_array) ** 2) / output.shape[0])
