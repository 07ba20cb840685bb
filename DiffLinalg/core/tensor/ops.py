import numpy as np

import DiffLinalg.core.backend.backend as backend
from DiffLinalg.core.autograd.graph import BackwardBuilder
from DiffLinalg.core.exceptions import DimensionError
from .tensor import Tensor
from .utils import ensure_tensor, result_type

# ============================================================================
# Creation operations
# ============================================================================

def zeros(shape, dtype=None) -> Tensor:
    """
    Create a Tensor filled with zeros.

    Args:
        shape (tuple): Desired tensor shape.
        dtype (dtype, optional): Data type. Defaults to backend.DTYPE.

    Returns:
        Tensor: New constant tensor of given shape filled with zeros.
    """
    return Tensor(backend.xp.zeros(shape, dtype=backend.dtype_or_default(dtype)))

def ones(shape, dtype=None) -> Tensor:
    """
    Create a Tensor filled with ones.

    Args:
        shape (tuple): Desired tensor shape.
        dtype (dtype, optional): Data type. Defaults to backend.DTYPE.

    Returns:
        Tensor: New constant tensor of given shape filled with ones.
    """
    return Tensor(backend.xp.ones(shape, dtype=backend.dtype_or_default(dtype)))

def full(shape, value, dtype=None) -> Tensor:
    """
    Create a Tensor filled with a specified value.

    Args:
        shape (tuple): Desired tensor shape.
        value (scalar): Constant value to fill the tensor with.
        dtype (dtype, optional): Data type. Defaults to backend.DTYPE.
    """
    return Tensor(backend.xp.full(shape, value, dtype=backend.dtype_or_default(dtype)))

def eye(n, m=None, dtype=None) -> Tensor:
    """
    Create a 2D identity matrix (or rectangular eye matrix).

    Args:
        n (int): Number of rows.
        m (int, optional): Number of columns. If None, defaults to n.
        dtype (dtype, optional): Data type, e.g. bool for a diagonal mask.
    """
    return Tensor(backend.xp.eye(N=n, M=m if m is not None else n, dtype=backend.dtype_or_default(dtype)))

def zeros_like(a: Tensor, dtype=None) -> Tensor:
    return zeros(a.shape, dtype=a.dtype if dtype is None else dtype)

def ones_like(a: Tensor, dtype=None) -> Tensor:
    return ones(a.shape, dtype=a.dtype if dtype is None else dtype)

# ============================================================================
# Helpers
# ============================================================================

def _cast(t: Tensor, dtype) -> Tensor:
    if t.dtype == dtype:
        return t
    return astype(t, dtype)

def unbroadcast(grad: Tensor, shape) -> Tensor:
    """
    Reduce `grad` back to `shape` (the original tensor shape before broadcasting).
    Differentiable, so it can sit inside backward closures under create_graph.
    """
    # Drop leading dims that got added
    while grad.ndim > len(shape):
        grad = sum(grad, axis=0)

    # For broadcasted axes (dim=1), sum along that axis
    axes = tuple(i for i, dim in enumerate(shape) if dim == 1 and grad.shape[i] != 1)
    if axes:
        grad = sum(grad, axis=axes, keepdims=True)
    return grad

def _normalize_axes(axis, ndim):
    if axis is None:
        return tuple(range(ndim))
    if isinstance(axis, int):
        axis = (axis,)
    return tuple(ax % ndim for ax in axis)

# ============================================================
# Binary elementwise operations
# ============================================================

def elementwise_op(a, b, op, grad_fns, name, retain=(True, True)):
    """
    General helper for elementwise operations with autograd support.

    Args:
        a (Tensor or scalar): First operand.
        b (Tensor or scalar): Second operand.
        op (callable): Forward operation applied to the raw arrays.
        grad_fns (tuple): (grad_a, grad_b), each fn(grad_out, a, b) -> Tensor
            in the broadcast output shape. Built from ops, so the gradient is
            itself differentiable.
        name (str): Name of the operation.
        retain (tuple of bool): Which inputs the gradient functions read.

    Returns:
        Tensor: Result tensor with autograd tracking.
    """
    dtype = result_type(a, b)
    a = ensure_tensor(a, dtype=dtype)
    b = ensure_tensor(b, dtype=dtype)

    data = op(a.data.astype(dtype, copy=False), b.data.astype(dtype, copy=False))
    out = Tensor(data)

    bb = BackwardBuilder(name, (a, b), out)
    for i, inp in enumerate((a, b)):
        bt = bb.create_target(i)
        if bt:
            tokens = tuple(bb.retain_input(j) if retain[j] else None for j in (0, 1))
            bt.define(_elementwise_backward(grad_fns[i], tokens, inp.shape, inp.dtype))
    bb.finalize()
    return out

def _elementwise_backward(grad_fn, tokens, shape, dtype):
    def backward(bctx):
        a, b = (bctx.get_retained_input(tok) if tok is not None else None for tok in tokens)
        grad = grad_fn(bctx.output_grad(), a, b)
        return _cast(unbroadcast(grad, shape), dtype)
    return backward

def add(a, b) -> Tensor:
    """
    Elementwise addition: out = a + b

    Args:
        a (Tensor): First operand.
        b (Tensor): Second operand.

    Returns:
        Tensor: Result of a + b, with autograd support.
    """
    return elementwise_op(
        a, b,
        op=lambda x, y: x + y,
        grad_fns=(lambda g, a, b: g,
                  lambda g, a, b: g),
        name="add",
        retain=(False, False),
    )

def subtract(a, b) -> Tensor:
    """
    Elementwise subtraction: out = a - b

    Args:
        a (Tensor): First operand.
        b (Tensor): Second operand.

    Returns:
        Tensor: Result of a - b, with autograd support.
    """
    return elementwise_op(
        a, b,
        op=lambda x, y: x - y,
        grad_fns=(lambda g, a, b: g,
                  lambda g, a, b: neg(g)),
        name="subtract",
        retain=(False, False),
    )

def multiply(a, b) -> Tensor:
    """
    Elementwise multiplication: out = a * b

    Args:
        a (Tensor): First operand.
        b (Tensor): Second operand.

    Returns:
        Tensor: Result of a * b, with autograd support.
    """
    return elementwise_op(
        a, b,
        op=lambda x, y: x * y,
        grad_fns=(lambda g, a, b: multiply(g, b),
                  lambda g, a, b: multiply(g, a)),
        name="multiply",
    )

def divide(a, b) -> Tensor:
    """
    Elementwise division: out = a / b

    Args:
        a (Tensor): Numerator.
        b (Tensor): Denominator.

    Returns:
        Tensor: Result of a / b, with autograd support.
    """
    return elementwise_op(
        a, b,
        op=lambda x, y: x / y,
        grad_fns=(lambda g, a, b: divide(g, b),
                  lambda g, a, b: neg(divide(multiply(g, a), multiply(b, b)))),
        name="divide",
    )

def where(condition, x, y) -> Tensor:
    """
    Elementwise selection: out = x where condition else y.

    Args:
        condition (Tensor or array of bool): Selector, never differentiated.
        x (Tensor or scalar): Values where condition is True.
        y (Tensor or scalar): Values where condition is False.

    Returns:
        Tensor: Broadcast result, with autograd support for x and y.
    """
    xp = backend.xp
    dtype = result_type(x, y)
    cond = ensure_tensor(condition, dtype=bool)
    x = ensure_tensor(x, dtype=dtype)
    y = ensure_tensor(y, dtype=dtype)

    data = xp.where(cond.data.astype(bool, copy=False),
                    x.data.astype(dtype, copy=False),
                    y.data.astype(dtype, copy=False))
    out = Tensor(data)

    bb = BackwardBuilder("where", (cond, x, y), out)
    for i, inp in ((1, x), (2, y)):
        bt = bb.create_target(i)
        if bt:
            bt.define(_where_backward(bb.retain_input(0), i == 1, inp.shape, inp.dtype))
    bb.finalize()
    return out

def _where_backward(cond_tok, select_true, shape, dtype):
    def backward(bctx):
        cond = bctx.get_retained_input(cond_tok)
        g = bctx.output_grad()
        grad = where(cond, g, 0.0) if select_true else where(cond, 0.0, g)
        return _cast(unbroadcast(grad, shape), dtype)
    return backward

# ============================================================================
# Unary operations
# ============================================================================

def neg(a) -> Tensor:
    """Elementwise negation: out = -a"""
    a = ensure_tensor(a)
    out = Tensor(-a.data)

    bb = BackwardBuilder("neg", a, out)
    bt = bb.create_target(0)
    if bt:
        bt.define(lambda bctx: neg(bctx.output_grad()))
    bb.finalize()
    return out

def reciprocal(a) -> Tensor:
    """
    Elementwise reciprocal: out = 1 / a

    1 / inf is exactly 0, so entries set to infinity beforehand come out as
    zeros with zero gradient.
    """
    a = ensure_tensor(a)
    out = Tensor(backend.xp.reciprocal(a.data))

    bb = BackwardBuilder("reciprocal", a, out)
    bt = bb.create_target(0)
    if bt:
        out_tok = bb.retain_output(0)

        def backward(bctx):
            r = bctx.get_retained_output(out_tok)
            return neg(multiply(bctx.output_grad(), multiply(r, r)))
        bt.define(backward)
    bb.finalize()
    return out

def astype(a, dtype) -> Tensor:
    """
    Cast to `dtype`. The gradient is cast back to the input dtype.
    """
    a = ensure_tensor(a)
    out = Tensor(a.data.astype(dtype))

    bb = BackwardBuilder("astype", a, out)
    bt = bb.create_target(0)
    if bt:
        in_dtype = a.dtype
        bt.define(lambda bctx: astype(bctx.output_grad(), in_dtype))
    bb.finalize()
    return out

# ============================================================================
# Reductions
# ============================================================================

def sum(a, axis=None, keepdims=False) -> Tensor:
    """
    Sum of elements over `axis`.

    Args:
        a (Tensor): Input tensor.
        axis (int or tuple, optional): Axes to reduce. All axes if None.
        keepdims (bool): Keep reduced axes with size 1.

    Returns:
        Tensor: Reduced tensor.
    """
    a = ensure_tensor(a)
    axes = _normalize_axes(axis, a.ndim)
    out = Tensor(backend.xp.sum(a.data, axis=axes, keepdims=keepdims))

    bb = BackwardBuilder("sum", a, out)
    bt = bb.create_target(0)
    if bt:
        in_shape = a.shape
        keep_shape = tuple(1 if i in axes else d for i, d in enumerate(in_shape))

        def backward(bctx):
            g = reshape(bctx.output_grad(), keep_shape)
            return broadcast_to(g, in_shape)
        bt.define(backward)
    bb.finalize()
    return out

def mean(a, axis=None, keepdims=False) -> Tensor:
    """Mean of elements over `axis`."""
    a = ensure_tensor(a)
    axes = _normalize_axes(axis, a.ndim)
    count = int(np.prod([a.shape[i] for i in axes])) if axes else 1
    return divide(sum(a, axis=axes, keepdims=keepdims), float(count))

# ============================================================
# Shape operations
# ============================================================

def reshape(a, new_shape) -> Tensor:
    """
    Reshape tensor.

    Args:
        a (Tensor): Input tensor.
        new_shape (tuple or int): New shape.

    Returns:
        Tensor: Reshaped tensor.
    """
    a = ensure_tensor(a)
    out = Tensor(a.data.reshape(new_shape))

    bb = BackwardBuilder("reshape", a, out)
    bt = bb.create_target(0)
    if bt:
        in_shape = a.shape
        bt.define(lambda bctx: reshape(bctx.output_grad(), in_shape))
    bb.finalize()
    return out

def transpose(a, axes=None) -> Tensor:
    """
    Transpose tensor (permute axes).

    Args:
        a (Tensor): Input tensor.
        axes (tuple, optional): Axis permutation. Reverses all axes if None.

    Returns:
        Tensor: Transposed tensor.
    """
    a = ensure_tensor(a)
    if axes is not None:
        axes = tuple(int(ax) for ax in axes)
    out = Tensor(backend.xp.transpose(a.data, axes=axes))

    bb = BackwardBuilder("transpose", a, out)
    bt = bb.create_target(0)
    if bt:
        inv_axes = None if axes is None else tuple(int(i) for i in np.argsort(axes))
        bt.define(lambda bctx: transpose(bctx.output_grad(), axes=inv_axes))
    bb.finalize()
    return out

def expand_dims(a, axis) -> Tensor:
    """Insert a new axis of size 1 at position `axis`."""
    a = ensure_tensor(a)
    out = Tensor(backend.xp.expand_dims(a.data, axis))

    bb = BackwardBuilder("expand_dims", a, out)
    bt = bb.create_target(0)
    if bt:
        in_shape = a.shape
        bt.define(lambda bctx: reshape(bctx.output_grad(), in_shape))
    bb.finalize()
    return out

def broadcast_to(a, shape) -> Tensor:
    """Broadcast tensor to `shape` following NumPy rules."""
    a = ensure_tensor(a)
    shape = tuple(shape)
    out = Tensor(backend.xp.broadcast_to(a.data, shape))

    bb = BackwardBuilder("broadcast_to", a, out)
    bt = bb.create_target(0)
    if bt:
        in_shape = a.shape
        bt.define(lambda bctx: unbroadcast(bctx.output_grad(), in_shape))
    bb.finalize()
    return out

def diag(a) -> Tensor:
    """
    Diagonal matrix from a vector, or diagonal vector from a square matrix.

    Args:
        a (Tensor): 1-D tensor of length n, or 2-D tensor of shape (n, n).

    Returns:
        Tensor: (n, n) matrix with `a` on the diagonal and zeros elsewhere,
        or the length-n diagonal of `a`.
    """
    a = ensure_tensor(a)
    if a.ndim == 2 and a.shape[0] != a.shape[1]:
        raise DimensionError("diag expects a square matrix", expected=(a.shape[0], a.shape[0]), actual=a.shape)
    if a.ndim not in (1, 2):
        raise DimensionError(f"diag expects a 1-D or 2-D tensor, got {a.ndim}-D", actual=a.shape)
    out = Tensor(backend.xp.diag(a.data).copy())

    bb = BackwardBuilder("diag", a, out)
    bt = bb.create_target(0)
    if bt:
        bt.define(lambda bctx: diag(bctx.output_grad()))
    bb.finalize()
    return out
