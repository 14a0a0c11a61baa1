"""
State Vector Module
===================

Current numerical iterate of all unknowns of an equation system.

The state vector is the single source of truth for variable values. Every
write notifies the registered StateVectorListener objects, which use the
notification to invalidate cached flows and derivatives.

Author: Manuel Schwenke
Date: 2025-02-05
"""

from typing import List, Optional

import numpy as np
from numpy.typing import NDArray

from equations.listeners import StateVectorListener


class StateVector:
    """
    Array of variable values indexed by variable row.

    Attributes
    ----------
    listeners : List[StateVectorListener]
        Objects notified after each write.
    """

    def __init__(self, array: Optional[NDArray[np.float64]] = None) -> None:
        self._array = np.zeros(0, dtype=np.float64) if array is None \
            else np.array(array, dtype=np.float64)
        self.listeners: List[StateVectorListener] = []

    def add_listener(self, listener: StateVectorListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: StateVectorListener) -> None:
        self.listeners.remove(listener)

    def _notify_state_update(self) -> None:
        for listener in self.listeners:
            listener.on_state_update()

    def get(self) -> NDArray[np.float64]:
        """Return the underlying array (not a copy)."""
        return self._array

    def set(self, values: NDArray[np.float64]) -> None:
        """
        Replace the whole state and notify listeners.

        Parameters
        ----------
        values : NDArray[np.float64]
            New values, one per variable row. The array is copied.
        """
        self._array = np.array(values, dtype=np.float64)
        self._notify_state_update()

    def set_value(self, row: int, value: float) -> None:
        """Set the value of a single row and notify listeners."""
        self._array[row] = value
        self._notify_state_update()

    def minus(self, dx: NDArray[np.float64]) -> None:
        """Apply a Newton-Raphson step ``x <- x - dx`` and notify listeners."""
        self._array = self._array - np.asarray(dx, dtype=np.float64)
        self._notify_state_update()

    def __getitem__(self, row: int) -> float:
        return self._array[row]

    def __len__(self) -> int:
        return len(self._array)

    def __repr__(self) -> str:
        return f"StateVector({np.array2string(self._array, precision=6)})"
