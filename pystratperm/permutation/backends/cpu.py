"""
Serial CPU backend for the stratified null distribution.

Draws every replicate in turn on the calling thread.
"""

from __future__ import annotations

import numpy as np

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


class CPUPermutationBackend:
    """
    CPU backend for stratified permutation testing.

    For each replicate: optional bootstrap resample of rows, a uniform
    shuffle of the outcome column, then per-(stratum, group) proportions
    for the true and shuffled outcomes.
    """

    @property
    def name(self) -> str:
        return 'cpu_permutation'

    def solve(self, design: StratifiedPermutationDesign) -> Result[NullDistribution]:
        """Build the null distribution and return Result[NullDistribution]."""
        timer = Timer()
        timer.start()

        with timer.section('observed'):
            observed = observed_counts(design)

        with timer.section('replicates'):
            seeds = replicate_seeds(design)
            true_counts, shuffled_counts = allocate_counts(design)
            fill_replicates(
                design, seeds, np.arange(design.R),
                true_counts, shuffled_counts,
            )

        return assemble(
            design, observed, true_counts, shuffled_counts,
            timer, self.name,
        )
