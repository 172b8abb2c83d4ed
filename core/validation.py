"""
Parameter validation shared by the aggregation components.

Every check raises InvalidParameter before any processing is performed.
"""

import math
from numbers import Real
from typing import Sequence, Tuple, Union

from core.exceptions import InvalidParameter

ScaleFactor = Union[float, Sequence[float]]


def require_non_negative(name: str, value) -> float:
    """Return ``value`` as float if it is a finite number >= 0."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise InvalidParameter(f"{name} must be finite and >= 0, got {value}")
    return value


def require_positive(name: str, value) -> float:
    value = require_non_negative(name, value)
    if value == 0:
        raise InvalidParameter(f"{name} must be > 0, got {value}")
    return value


def require_positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise InvalidParameter(f"{name} must be > 0, got {value}")
    return value


def require_scale_factors(value: ScaleFactor) -> Tuple[float, float, float]:
    """
    Normalize a uniform or per-axis scale into an (sx, sy, sz) tuple.

    A uniform factor applies to all three axes; a 2-tuple leaves z unscaled.
    Zero and non-finite factors are rejected.
    """
    if isinstance(value, Real) and not isinstance(value, bool):
        factors = (float(value),) * 3
    else:
        try:
            factors = tuple(float(v) for v in value)
        except (TypeError, ValueError):
            raise InvalidParameter(f"scale must be a number or a sequence of numbers, got {value!r}")
        if len(factors) == 2:
            factors = factors + (1.0,)
        elif len(factors) != 3:
            raise InvalidParameter(f"per-axis scale needs 2 or 3 factors, got {len(factors)}")

    for axis, factor in zip('xyz', factors):
        if not math.isfinite(factor) or factor == 0:
            raise InvalidParameter(f"scale factor for {axis} must be finite and non-zero, got {factor}")
    return factors
