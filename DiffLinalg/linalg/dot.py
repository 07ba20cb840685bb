"""
Generalized dot product.

Any rank combination is reduced to one 2-D matrix product on reshaped
operands; the gradient rule is written with `dot` itself.
"""

import numpy as np

from DiffLinalg.core.autograd.graph import BackwardBuilder
from DiffLinalg.core.backend.kernels import call_kernel
from DiffLinalg.core.tensor.tensor import Tensor
from DiffLinalg.core.tensor.utils import ensure_tensor, result_type
from DiffLinalg.core.tensor import ops
from .shapes import check_dot_shapes, b_matrix_axes


def dot(a, b, out_dtype=None) -> Tensor:
    """
    Generalized dot product of two tensors.

    Contracts the last axis of `a` with the first axis of `b` if `b` is 1-D or
    2-D, and with the second-to-last axis of `b` otherwise. The result matches
    `numpy.dot` for every rank combination. The whole product runs as a single
    2-D matrix product on reshaped operands.

    Args:
        a (Tensor): Left operand.
        b (Tensor): Right operand.
        out_dtype (dtype, optional): Result dtype. Defaults to the promoted
            dtype of `a` and `b`.

    Returns:
        Tensor: Product with shape a.shape[:-1] + (b.shape without its
        contracted axis).

    Raises:
        DimensionError: If the contracted axes differ in size.

    Notes:
        - A 0-D operand turns the product into elementwise multiplication.
        - A zero-sized contracted axis gives zeros and no gradient rule.
        - Gradient w.r.t. `a`: grad_out . b^T
        - Gradient w.r.t. `b`: a^T . grad_out
        Both are computed with `dot` itself, so they are differentiable too.
    """
    a = ensure_tensor(a)
    b = ensure_tensor(b)

    if a.ndim == 0 or b.ndim == 0:
        out = ops.multiply(a, b)
        if out_dtype is not None and out.dtype != np.dtype(out_dtype):
            out = ops.astype(out, out_dtype)
        return out

    real_out_dtype = np.dtype(out_dtype) if out_dtype is not None else result_type(a, b)

    out_shape, k, m, n = check_dot_shapes(a.shape, b.shape)
    if k == 0:
        return ops.zeros(out_shape, dtype=real_out_dtype)

    # Make each operand a matrix
    a_matrix = ops.reshape(a, (m, k))
    if b.ndim > 2:
        b_swapped = ops.transpose(b, axes=b_matrix_axes(b.ndim))
        b_matrix = ops.transpose(ops.reshape(b_swapped, (n, k)))
    else:
        b_matrix = ops.reshape(b, (k, n))

    out_matrix = Tensor(call_kernel("dot", a_matrix.data, b_matrix.data, real_out_dtype))
    _define_dot_backward(a_matrix, b_matrix, out_matrix, a.dtype, b.dtype)

    return ops.reshape(out_matrix, out_shape)


def _define_dot_backward(a_matrix, b_matrix, out_matrix, a_dtype, b_dtype):
    bb = BackwardBuilder("dot", (a_matrix, b_matrix), out_matrix)

    bt = bb.create_target(0)
    if bt:
        b_matrix_tok = bb.retain_input(1)

        def backward_a(bctx):
            b_mat = bctx.get_retained_input(b_matrix_tok)
            return dot(bctx.output_grad(), ops.transpose(b_mat), a_dtype)
        bt.define(backward_a)

    bt = bb.create_target(1)
    if bt:
        a_matrix_tok = bb.retain_input(0)

        def backward_b(bctx):
            a_mat = bctx.get_retained_input(a_matrix_tok)
            return dot(ops.transpose(a_mat), bctx.output_grad(), b_dtype)
        bt.define(backward_b)

    bb.finalize()
