"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np

from DiffLinalg import Tensor
from DiffLinalg.core.backend.kernels import get_kernel, register_kernel


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def tensor():
    """Factory for float64 tensors."""
    def make(data, requires_grad=False):
        return Tensor(np.asarray(data, dtype=np.float64), requires_grad=requires_grad)
    return make


@pytest.fixture
def symmetric(rng):
    """Factory for random symmetric matrices (distinct eigenvalues almost surely)."""
    def make(n):
        m = rng.standard_normal((n, n))
        return (m + m.T) / 2.0
    return make


@pytest.fixture
def kernel_calls():
    """Count calls per kernel name while the test runs."""
    counts = {"dot": 0, "syevd": 0}
    originals = {}
    for name in counts:
        original = get_kernel(name)

        def counting(*args, _name=name, _original=original, **kwargs):
            counts[_name] += 1
            return _original(*args, **kwargs)

        originals[name] = register_kernel(name, counting)
    yield counts
    for name, fn in originals.items():
        register_kernel(name, fn)
