"""
Symmetric eigendecomposition.

Only 2-D inputs are supported; batched and non-symmetric decompositions are
out of scope.
"""

from DiffLinalg.core.autograd.graph import BackwardBuilder
from DiffLinalg.core.backend.kernels import call_kernel
from DiffLinalg.core.exceptions import DimensionError, ValidationError
from DiffLinalg.core.tensor.tensor import Tensor
from DiffLinalg.core.tensor.utils import ensure_tensor
from DiffLinalg.core.tensor import ops
from .dot import dot

_UPLO = ("L", "U")


def _check_uplo(uplo):
    selector = str(uplo).upper()
    if selector not in _UPLO:
        raise ValidationError(f"uplo must be 'L' or 'U', got {uplo!r}")
    return selector


def _check_square(a, name):
    if a.ndim != 2:
        raise DimensionError(f"{name} supports only 2-dimensional arrays, got {a.ndim}-D",
                             expected=2, actual=a.ndim)
    if a.shape[0] != a.shape[1]:
        raise DimensionError(f"{name}: matrix is not square, got shape {a.shape}",
                             expected=(a.shape[0], a.shape[0]), actual=a.shape)


def eigh(a, uplo="L"):
    """
    Eigenvalues and eigenvectors of a symmetric matrix.

    Args:
        a (Tensor): (n, n) symmetric matrix.
        uplo (str): "L" to read the lower triangle, "U" for the upper one.

    Returns:
        tuple: (w, v). `w` holds the n eigenvalues in ascending order; the
        columns of `v` are the matching orthonormal eigenvectors, so
        a . v == v . diag(w).

    Raises:
        DimensionError: If `a` is not a square 2-D tensor.
        ValidationError: If `uplo` is not "L" or "U".

    Notes:
        The gradient is
            grad_a = v (F * (v^T grad_v) + diag(grad_w)) v^T,
            F[i, j] = 1 / (w[j] - w[i]) off the diagonal, 0 on it.
        It is not defined for repeated eigenvalues and becomes non-finite there.
    """
    a = ensure_tensor(a)
    _check_square(a, "eigh")
    uplo = _check_uplo(uplo)

    w, v = call_kernel("syevd", a.data, uplo, True)
    w = Tensor(w)
    v = Tensor(v)

    # Reference: Giles, "An extended collection of matrix derivative results
    # for forward and reverse mode AD", section 3.1.
    bb = BackwardBuilder("eigh", a, (w, v))
    bt = bb.create_target(0)
    if bt:
        a_tok = bb.retain_input(0)
        w_tok = bb.retain_output(0)
        v_tok = bb.retain_output(1)

        def backward(bctx):
            a = bctx.get_retained_input(a_tok)
            w = bctx.get_retained_output(w_tok)
            v = bctx.get_retained_output(v_tok)

            gw = bctx.output_grad_or_zeros(0)
            gv = bctx.output_grad_or_zeros(1)

            vt = ops.transpose(v)

            F = ops.subtract(ops.expand_dims(w, 0), ops.expand_dims(w, 1))
            # F is 0 on the diagonal; set it to inf so the reciprocal is 0 there.
            mask = ops.eye(F.shape[0], F.shape[1], dtype=bool)
            F = ops.where(mask, float("inf"), F)
            F = ops.reciprocal(F)

            inner = ops.add(ops.multiply(F, dot(vt, gv)), ops.diag(gw))
            grad_a = dot(dot(v, inner), vt)
            if grad_a.dtype != a.dtype:
                grad_a = ops.astype(grad_a, a.dtype)
            return grad_a
        bt.define(backward)
    bb.finalize()

    return w, v


def eigvalsh(a, uplo="L"):
    """
    Eigenvalues of a symmetric matrix, in ascending order.

    Same validation and kernel as `eigh`, but eigenvectors are not computed
    and the result is never differentiable.

    Args:
        a (Tensor): (n, n) symmetric matrix.
        uplo (str): "L" to read the lower triangle, "U" for the upper one.

    Returns:
        Tensor: The n eigenvalues, as a constant.
    """
    a = ensure_tensor(a)
    _check_square(a, "eigvalsh")
    uplo = _check_uplo(uplo)

    w, _ = call_kernel("syevd", a.data, uplo, False)
    return Tensor(w)
