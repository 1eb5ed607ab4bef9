"""
Pure transformations over CoupledContainer.

A Transform takes a container and returns a new one; the input is never
modified. Each instance records its name, parameters and creation time so a
pipeline can be written into a methods section exactly as it ran.

Examples:
    >>> from expressionkit.core.transform import FilterLowCounts, LogTransform
    >>> kept = FilterLowCounts(min_total=10).apply(se)
    >>> logged = LogTransform(base=2.0).apply(kept)
    >>> logged.assay('logcounts')
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, TYPE_CHECKING

import numpy as np
from scipy import sparse

if TYPE_CHECKING:
    from expressionkit.core.container import CoupledContainer

logger = logging.getLogger(__name__)

__all__ = ['Transform', 'LogTransform', 'FilterLowCounts']


def _dense(matrix: Any) -> np.ndarray:
    return matrix.toarray() if sparse.issparse(matrix) else np.asarray(matrix)


class Transform(ABC):
    """
    Abstract base class for container transformations.

    Attributes:
        name: Human-readable transformation name (e.g., "LogTransform")
        params: Parameters used for this transformation (JSON-serializable)
        timestamp: When this transform instance was created
    """

    def __init__(self, name: str, params: dict[str, Any]):
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, container: CoupledContainer) -> CoupledContainer:
        """Return a new container with the transformation applied."""

    def validate(self, container: CoupledContainer) -> list[str]:
        """
        Check preconditions; returns error messages (empty = OK).

        Subclasses should extend the list from ``super().validate()``.
        """
        errors: list[str] = []
        if container.n_features == 0 or container.n_samples == 0:
            errors.append("Cannot process empty container")
        return errors

    def _check(self, container: CoupledContainer) -> None:
        errors = self.validate(container)
        if errors:
            raise ValueError(f"{self!r} cannot be applied: " + "; ".join(errors))
        logger.info("Applying %r to %d×%d container", self, *container.shape)

    def __repr__(self) -> str:
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"


class LogTransform(Transform):
    """
    Log-scale one assay into another slot: log_base(x + pseudocount).

    The source slot is left as-is, so raw counts and log values sit side by
    side in the result.
    """

    def __init__(
        self,
        base: float = 2.0,
        pseudocount: float = 1.0,
        source: str = 'counts',
        target: str = 'logcounts',
    ):
        if base <= 0 or base == 1:
            raise ValueError(f"log base must be positive and != 1, got {base}")
        super().__init__(
            name="LogTransform",
            params={"base": base, "pseudocount": pseudocount, "source": source, "target": target},
        )
        self.base = base
        self.pseudocount = pseudocount
        self.source = source
        self.target = target

    def validate(self, container: CoupledContainer) -> list[str]:
        errors = super().validate(container)
        if self.source not in container.assays:
            errors.append(f"no assay slot named {self.source!r}")
            return errors
        values = _dense(container.assay(self.source))
        if np.nanmin(values) + self.pseudocount <= 0:
            errors.append(
                f"values + pseudocount must be positive (min value {np.nanmin(values)})"
            )
        return errors

    def apply(self, container: CoupledContainer) -> CoupledContainer:
        self._check(container)
        values = _dense(container.assay(self.source)).astype(float)
        result = container.copy(deep=False)
        result.set_assay(self.target, np.log(values + self.pseudocount) / np.log(self.base))
        return result


class FilterLowCounts(Transform):
    """
    Keep features whose total count across samples reaches ``min_total``.

    The usual first step before differential expression: rows with almost
    no reads carry no information and inflate multiple-testing burden.
    """

    def __init__(self, min_total: float = 10, slot: str = 'counts'):
        super().__init__(name="FilterLowCounts", params={"min_total": min_total, "slot": slot})
        self.min_total = min_total
        self.slot = slot

    def validate(self, container: CoupledContainer) -> list[str]:
        errors = super().validate(container)
        if self.slot not in container.assays:
            errors.append(f"no assay slot named {self.slot!r}")
        return errors

    def apply(self, container: CoupledContainer) -> CoupledContainer:
        self._check(container)
        totals = np.asarray(container.assay(self.slot).sum(axis=1)).ravel()
        keep = totals >= self.min_total
        logger.info(
            "FilterLowCounts kept %d of %d features (min_total=%s)",
            int(keep.sum()), len(keep), self.min_total,
        )
        return container.subset_features(keep)
