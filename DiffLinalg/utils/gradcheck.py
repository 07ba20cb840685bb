"""
Finite-difference gradient checking.

Analytic gradients come from the autograd engine; numerical gradients from
central differences on the raw data. Use float64 inputs: float32 central
differences are too noisy for tight tolerances.
"""

import numpy as np

import DiffLinalg.core.backend.backend as backend
from DiffLinalg.core.autograd.engine import grad
from DiffLinalg.core.exceptions import GradientError
from DiffLinalg.core.tensor.tensor import Tensor


def _scalarize(out, grad_output):
    data = backend.to_numpy(out.data)
    if grad_output is None:
        return float(np.sum(data))
    return float(np.sum(data * np.asarray(grad_output)))


def numerical_grad(fn, inputs, eps=1e-6, grad_output=None):
    """
    Central-difference gradient of sum(fn(*inputs) * grad_output).

    Args:
        fn (callable): Maps Tensors to one Tensor.
        inputs (sequence of Tensor): Points to differentiate at.
        eps (float): Step size.
        grad_output (array, optional): Output weighting; ones if omitted.

    Returns:
        list of np.ndarray: One gradient per input.
    """
    xp = backend.xp
    base = [backend.to_numpy(t.data).astype(np.float64) for t in inputs]
    dtypes = [t.dtype for t in inputs]
    grads = []
    with backend.no_grad():
        for idx in range(len(inputs)):
            g = np.zeros_like(base[idx])
            it = np.nditer(base[idx], flags=["multi_index"])
            for _ in it:
                pos = it.multi_index
                values = []
                for step in (eps, -eps):
                    shifted = base[idx].copy()
                    shifted[pos] += step
                    args = [Tensor(xp.asarray(shifted if j == idx else base[j]), dtype=dtypes[j])
                            for j in range(len(inputs))]
                    values.append(_scalarize(fn(*args), grad_output))
                g[pos] = (values[0] - values[1]) / (2 * eps)
            grads.append(g)
    return grads


def check_grad(fn, inputs, eps=1e-6, atol=1e-5, rtol=1e-4, grad_output=None):
    """
    Compare autograd gradients of `fn` against finite differences.

    Returns:
        True if every input gradient matches.

    Raises:
        GradientError: With the worst absolute error, on mismatch.
    """
    inputs = list(inputs)
    out = fn(*inputs)
    seed = None
    if grad_output is not None:
        seed = Tensor(backend.xp.asarray(grad_output), dtype=out.dtype)
    elif out.size != 1:
        seed = Tensor(backend.xp.ones(out.shape, dtype=out.dtype))
    analytic = grad(out, inputs, grad_outputs=seed, allow_unused=True)
    numeric = numerical_grad(fn, inputs, eps=eps, grad_output=grad_output)

    for i, (a, n) in enumerate(zip(analytic, numeric)):
        a = np.zeros_like(n) if a is None else backend.to_numpy(a.data)
        if not np.allclose(a, n, atol=atol, rtol=rtol):
            err = float(np.max(np.abs(a - n)))
            raise GradientError(f"Gradient mismatch for input {i}: max abs error {err:.3e}")
    return True
