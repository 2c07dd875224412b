"""Newton-Raphson root finding with a fixed convergence policy.

Iteration:

    x[k+1] = x[k] - f(x[k]) / f'(x[k])

Converged when ``|x[k+1] - x[k]| < tolerance``.  Anything that stops the
iteration from making progress (zero derivative, overflow, non-finite
estimate, iteration cap) yields ``None`` instead of a number, so callers can
report the root as undefined.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class NewtonRaphson:
    tolerance: float = 1e-6
    max_iterations: int = 50

    def __post_init__(self) -> None:
        if self.tolerance <= 0:
            raise ValueError("tolerance must be positive")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")

    def solve(
        self,
        f: Callable[[float], float],
        df: Callable[[float], float],
        x0: float,
    ) -> Optional[float]:
        """Return a root of *f* near *x0*, or ``None`` if none was found.

        Args:
            f:  Function whose root is sought.
            df: Its first derivative.
            x0: Initial estimate.
        """
        x = x0
        for _ in range(self.max_iterations):
            try:
                fx = f(x)
                dfx = df(x)
            except (ZeroDivisionError, OverflowError):
                return None

            if not (math.isfinite(fx) and math.isfinite(dfx)) or dfx == 0:
                return None

            x_next = x - fx / dfx
            if not math.isfinite(x_next):
                return None
            if abs(x_next - x) < self.tolerance:
                return x_next
            x = x_next

        return None


DEFAULT_SOLVER = NewtonRaphson()
