"""
Numeric kernels.

Kernels take and return raw backend arrays; they know nothing about Tensors
or the autograd graph. Routines pick the kernel and the shapes, then go
through `call_kernel`, which suspends grad recording for the duration of the
call.
"""

import DiffLinalg.core.backend.backend as backend


def _dot_kernel(a, b, out_dtype):
    """2-D matrix product: (m, k) x (k, n) -> (m, n) in `out_dtype`."""
    xp = backend.xp
    return xp.dot(a.astype(out_dtype, copy=False), b.astype(out_dtype, copy=False))


def _syevd_kernel(a, uplo, compute_v):
    """
    Symmetric eigensolver.

    Only the triangle selected by `uplo` ("L" or "U") is read. Eigenvalues are
    returned in ascending order; eigenvectors are the columns of `v`.

    Returns:
        (w, v) if `compute_v`, else (w, None).
    """
    xp = backend.xp
    if compute_v:
        w, v = xp.linalg.eigh(a, UPLO=uplo)
        return w, v
    return xp.linalg.eigvalsh(a, UPLO=uplo), None


KERNELS = {
    "dot": _dot_kernel,
    "syevd": _syevd_kernel,
}


def register_kernel(name, fn):
    """
    Install `fn` as the kernel called `name`.

    Returns:
        The previously registered kernel, or None.
    """
    prev = KERNELS.get(name)
    KERNELS[name] = fn
    return prev


def get_kernel(name):
    try:
        return KERNELS[name]
    except KeyError:
        raise KeyError(f"No kernel registered under '{name}'. Available: {sorted(KERNELS)}") from None


def call_kernel(name, *args, **kwargs):
    """
    Run kernel `name` with grad recording suspended.

    The previous grad mode is restored whether the kernel returns or raises.
    """
    kernel = get_kernel(name)
    with backend.no_grad():
        return kernel(*args, **kwargs)
