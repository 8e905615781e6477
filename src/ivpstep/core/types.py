"""Common type aliases used throughout the package."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

import numpy as np
import numpy.typing

# Common type for Arrays, e.g. the dependent variable of a point
Array: TypeAlias = numpy.typing.NDArray[np.float64]

# Objects that can be coerced into an Array
ArrayLike: TypeAlias = numpy.typing.ArrayLike

# A scalar function that may be undefined at its argument (None = outside the domain)
PartialFunction: TypeAlias = Callable[[float], float | None]
