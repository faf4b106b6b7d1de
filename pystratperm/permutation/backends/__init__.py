"""Backends for stratified permutation testing."""

from pystratperm.permutation.backends.cpu import CPUPermutationBackend
from pystratperm.permutation.backends.threaded import ThreadedPermutationBackend

__all__ = [
    "CPUPermutationBackend",
    "ThreadedPermutationBackend",
]
