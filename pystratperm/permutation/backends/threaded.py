"""
Worker-pool backend for the stratified null distribution.

Replicates are independent, so they are split into contiguous chunks
and drawn by joblib workers on the threading backend. numpy releases
the GIL inside the shuffle and bincount kernels. Every replicate owns
its seed, so the output is identical to CPUPermutationBackend for the
same design.
"""

from __future__ import annotations

import numpy as np
from joblib import Parallel, cpu_count, delayed

from pystratperm.core.exceptions import ValidationError
from pystratperm.core.result import Result
from pystratperm.core.timing import Timer
from pystratperm.permutation._common import NullDistribution
from pystratperm.permutation.design import StratifiedPermutationDesign
from pystratperm.permutation.backends._replicates import (
    allocate_counts,
    assemble,
    fill_replicates,
    observed_counts,
    replicate_seeds,
)


class ThreadedPermutationBackend:
    """
    Thread-pool backend for stratified permutation testing.

    Args:
        n_jobs: Number of worker threads. None uses joblib.cpu_count().
    """

    def __init__(self, n_jobs: int | None = None):
        if n_jobs is None:
            n_jobs = cpu_count()
        if isinstance(n_jobs, bool) or not isinstance(n_jobs, int) or n_jobs < 1:
            raise ValidationError(f"n_jobs must be a positive integer, got {n_jobs!r}")
        self.n_jobs = n_jobs

    @property
    def name(self) -> str:
        return 'cpu_threaded_permutation'

    def solve(self, design: StratifiedPermutationDesign) -> Result[NullDistribution]:
        """Build the null distribution and return Result[NullDistribution]."""
        timer = Timer()
        timer.start()

        with timer.section('observed'):
            observed = observed_counts(design)

        n_workers = min(self.n_jobs, design.R)

        with timer.section('replicates'):
            seeds = replicate_seeds(design)
            true_counts, shuffled_counts = allocate_counts(design)
            chunks = np.array_split(np.arange(design.R), n_workers)

            # Threads share the preallocated count arrays; each chunk writes its own rows
            drawn = sum(Parallel(n_jobs=n_workers, prefer='threads', require='sharedmem')(
                delayed(fill_replicates)(design, seeds, chunk, true_counts, shuffled_counts)
                for chunk in chunks
            ))

        if drawn != design.R:
            raise RuntimeError(
                f"worker pool drew {drawn} replicates, expected {design.R}"
            )

        return assemble(
            design, observed, true_counts, shuffled_counts,
            timer, self.name,
            extra_info={'n_workers': n_workers},
        )
