"""
Shape algebra for the generalized dot product.

`dot(a, b)` contracts the last axis of `a` with the first axis of `b` when `b`
is at most 2-D, and with the second-to-last axis of `b` otherwise (the same
convention as `numpy.dot`). Everything here works on plain shape tuples so
it can run before any tensor is touched.
"""

from functools import reduce
import operator

from DiffLinalg.core.exceptions import DimensionError


def _prod(dims):
    return reduce(operator.mul, dims, 1)


def contracted_sizes(a_shape, b_shape):
    """Sizes of the axes that `dot` sums over: (from a, from b)."""
    if len(b_shape) <= 2:
        return a_shape[-1], b_shape[0]
    return a_shape[-1], b_shape[-2]


def dot_output_shape(a_shape, b_shape):
    """
    Result shape of `dot(a, b)` for operands of rank >= 1.

    a.shape[:-1] followed by b's shape without its contracted axis.
    """
    a_shape, b_shape = tuple(a_shape), tuple(b_shape)
    if len(b_shape) <= 2:
        return a_shape[:-1] + b_shape[1:]
    return a_shape[:-1] + b_shape[:-2] + b_shape[-1:]


def b_matrix_axes(b_ndim):
    """Permutation that swaps the last two axes of an operand of rank `b_ndim`."""
    return tuple(range(b_ndim - 2)) + (b_ndim - 1, b_ndim - 2)


def check_dot_shapes(a_shape, b_shape):
    """
    Validate a `dot` call and plan its 2-D reduction.

    Args:
        a_shape (tuple): Shape of the left operand (rank >= 1).
        b_shape (tuple): Shape of the right operand (rank >= 1).

    Returns:
        tuple: (out_shape, k, m, n) where the product becomes one
        (m, k) x (k, n) matrix product. m and n are 0 when k is 0.

    Raises:
        DimensionError: If the contracted axes have different sizes.
    """
    k, k_b = contracted_sizes(a_shape, b_shape)
    if k != k_b:
        raise DimensionError(
            f"Axis dimension mismatch: {tuple(a_shape)} and {tuple(b_shape)} "
            f"contract sizes {k} and {k_b}",
            expected=k,
            actual=k_b,
        )
    out_shape = dot_output_shape(a_shape, b_shape)
    if k == 0:
        return out_shape, 0, 0, 0
    m = _prod(a_shape) // k
    n = _prod(b_shape) // k
    return out_shape, k, m, n
