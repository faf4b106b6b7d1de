"""
Generic result container for PyStratPerm computations.

Every backend returns a Result[P]: the domain payload plus metadata for
timing, warnings and reproducibility. Solution classes wrap a Result and
expose friendly accessors.

Design decisions:
    - Generic over parameter payload P
    - info dict for flexible metadata (R, strata count, resampling mode)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True) for reproducibility
"""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

import numpy as np

P = TypeVar('P')  # Parameter payload type


def _default_provenance() -> dict[str, str]:
    """Versions that determine the exact random stream and arithmetic."""
    from pystratperm import __version__

    return {
        'pystratperm_version': __version__,
        'numpy_version': np.__version__,
        'python_version': platform.python_version(),
    }


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain payload (null distribution, p-value table, ...)
        info: Structured metadata
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the backend that produced this result
        warnings: Non-fatal issues encountered during computation
        provenance: Library versions used to produce the result

    Examples:
        >>> Result(
        ...     params=null_payload,
        ...     info={'R': 1000, 'n_strata': 4},
        ...     timing={'total_seconds': 0.2, 'replicates': 0.19},
        ...     backend_name='cpu_permutation',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)
    provenance: dict[str, str] = field(default_factory=_default_provenance)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
