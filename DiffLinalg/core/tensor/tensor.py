import numpy as np

import DiffLinalg.core.backend.backend as backend


class Tensor:
    # ======================================================
    # Core initialization
    # ======================================================
    def __init__(self, data, requires_grad=False, dtype=None):
        """
        Tensor(data, requires_grad=False, dtype=None)

        Core tensor object for DiffLinalg.

        Args:
            data: array-like, numpy.ndarray, cupy.ndarray, Tensor or scalar.
            requires_grad (bool): track gradients for autograd.
            dtype (str or np.dtype, optional): data type to cast input to.
                Arrays keep their own dtype when omitted; Python data takes
                the backend default (backend.DTYPE).
        """
        xp = backend.xp

        if isinstance(data, Tensor):
            data = data.data
        if isinstance(data, (np.ndarray, np.generic, xp.ndarray)):
            data = xp.asarray(data, dtype=dtype)
        else:
            data = xp.asarray(np.array(data), dtype=backend.dtype_or_default(dtype))

        self.data = data
        self.requires_grad = bool(requires_grad) and backend.is_grad_enabled()

        self.grad = None
        self.grad_fn = None
        self.output_index = 0
        self.is_leaf = True
        self._grad_hooks = []
        self._retain_grad = False

    # ======================================================
    # Display / Python integration
    # ======================================================
    def __repr__(self):
        """
        String representation with truncated array contents.
        Shows first few elements per dimension for readability.
        """
        def truncate(arr):
            if arr.ndim == 0:
                return str(arr.item())
            if arr.ndim == 1:
                s = arr[:3]
                return f"{s.tolist()}..." if arr.size > 3 else f"{s.tolist()}"
            s = arr[:3]
            rows = [truncate(row) for row in s]
            return "[" + ",\n ".join(rows) + ("..." if arr.shape[0] > 3 else "") + "]"

        data_str = truncate(self.data)
        grad_fn = f", grad_fn={self.grad_fn.name}" if self.grad_fn is not None else ""
        return (f"Tensor(shape={self.shape}, dtype={self.dtype}, "
                f"requires_grad={self.requires_grad}{grad_fn}, data={data_str})")

    def __len__(self):
        """Return length of first dimension. Raises TypeError for scalars."""
        if self.ndim == 0:
            raise TypeError("Scalar tensor has no length")
        return self.data.shape[0]

    def __bool__(self):
        """
        Convert to bool.
        Only valid for scalar tensors (size == 1).
        """
        if self.size != 1:
            raise ValueError("The truth value of a tensor with more than one element is ambiguous")
        return bool(self.data)

    # ======================================================
    # Arithmetic operators
    # ======================================================
    def __add__(self, other): return ops.add(self, other)
    def __radd__(self, other): return ops.add(other, self)

    def __sub__(self, other): return ops.subtract(self, other)
    def __rsub__(self, other): return ops.subtract(other, self)

    def __mul__(self, other): return ops.multiply(self, other)
    def __rmul__(self, other): return ops.multiply(other, self)

    def __truediv__(self, other): return ops.divide(self, other)
    def __rtruediv__(self, other): return ops.divide(other, self)

    def __neg__(self): return ops.neg(self)

    # ======================================================
    # Linear algebra
    # ======================================================
    def dot(self, other, out_dtype=None):
        """Generalized dot product, see DiffLinalg.linalg.dot."""
        from DiffLinalg.linalg import dot
        return dot(self, other, out_dtype=out_dtype)

    # ======================================================
    # Tensor methods: reshaping / views
    # ======================================================
    def reshape(self, *shape):
        """
        Returns a reshaped tensor.
        Args:
            *shape: target shape (tuple or ints).
        """
        return ops.reshape(self, shape if len(shape) != 1 or isinstance(shape[0], int) else shape[0])

    def flatten(self):
        """Flatten tensor into 1D."""
        return self.reshape(self.size)

    @property
    def T(self):
        """Shorthand for transpose (all axes reversed)."""
        return ops.transpose(self)

    def transpose(self, axes=None):
        return ops.transpose(self, axes=axes)

    # ======================================================
    # Reductions
    # ======================================================
    def sum(self, axis=None, keepdims=False):
        """Sum of elements over axis."""
        return ops.sum(self, axis=axis, keepdims=keepdims)
    def mean(self, axis=None, keepdims=False):
        """Mean of elements over axis."""
        return ops.mean(self, axis=axis, keepdims=keepdims)

    # ======================================================
    # Conversion / utility
    # ======================================================
    def zero_grad(self):
        """Clear gradients (set to None)."""
        self.grad = None
    def detach(self):
        """Return a new Tensor detached from graph, sharing data."""
        return Tensor(self.data, requires_grad=False, dtype=self.dtype)
    def item(self):
        """Return Python scalar from a size-1 Tensor."""
        if self.size != 1:
            raise ValueError("Can only convert scalar tensor to Python number")
        return self.data.item()
    def clone(self):
        """Return a copy of the tensor's data as a new leaf."""
        return Tensor(self.data.copy(), requires_grad=self.requires_grad, dtype=self.dtype)
    def numpy(self):
        """Return NumPy array (copy if GPU backend)."""
        return backend.to_numpy(self.data)

    def astype(self, dtype):
        """Return new Tensor with given dtype (differentiable)."""
        return ops.astype(self, dtype)

    def register_grad_hook(self, hook_fn):
        """
        Register a gradient hook to be called when this tensor receives a gradient.

        Args:
            hook_fn (Callable): A function that takes a gradient Tensor and returns a (possibly modified) gradient.
        Returns:
            The hook function (so it can be removed later if desired).
        """
        self._grad_hooks.append(hook_fn)
        return hook_fn

    # ======================================================
    # Properties
    # ======================================================
    @property
    def shape(self):
        """Tensor shape as tuple."""
        return tuple(self.data.shape)
    @property
    def ndim(self):
        """Number of dimensions."""
        return self.data.ndim
    @property
    def size(self):
        """Number of elements."""
        return int(self.data.size)
    @property
    def dtype(self):
        return self.data.dtype

    # ======================================================
    # Constructors
    # ======================================================
    @classmethod
    def randn(cls, shape, requires_grad=False, dtype=None):
        """Return Tensor with values from N(0,1)."""
        xp = backend.xp
        return cls(xp.random.randn(*shape).astype(backend.dtype_or_default(dtype)), requires_grad)
    @classmethod
    def zeros(cls, shape, requires_grad=False, dtype=None):
        """Return Tensor filled with zeros."""
        return cls(backend.xp.zeros(shape, dtype=backend.dtype_or_default(dtype)), requires_grad)
    @classmethod
    def ones(cls, shape, requires_grad=False, dtype=None):
        """Return Tensor filled with ones."""
        return cls(backend.xp.ones(shape, dtype=backend.dtype_or_default(dtype)), requires_grad)
    @classmethod
    def eye(cls, n, requires_grad=False, dtype=None):
        """Return identity matrix of size (n,n)."""
        return cls(backend.xp.eye(n, dtype=backend.dtype_or_default(dtype)), requires_grad)

    # ======================================================
    # Autograd
    # ======================================================
    def requires_grad_(self, requires=True):
        """
        Set requires_grad in-place. Only meaningful for leaf tensors.
        Args:
            requires (bool): track gradients if True.
        """
        if not self.is_leaf and not requires:
            raise RuntimeError("Cannot turn off requires_grad on a non-leaf tensor; use detach()")
        self.requires_grad = requires
        return self

    def retain_grad(self):
        """Retain grad for non-leaf tensors."""
        if not self.requires_grad:
            raise RuntimeError("Cannot retain grad on a tensor that does not require grad")
        self._retain_grad = True
        return self

    def visualize(self, indent=0, visited=None):
        """Print the autograd graph below this tensor as a tree."""
        if visited is None:
            visited = set()

        prefix = "  " * indent
        node_type = f"Tensor(shape={self.shape}, dtype={self.dtype})"
        if self.grad_fn is not None:
            node_type += f" <- {self.grad_fn.name}"
        print(f"{prefix}{node_type} [requires_grad={self.requires_grad}]")

        if self.grad_fn is None:
            return
        if id(self.grad_fn) in visited:
            print(f"{prefix}  ↳ (already visited)")
            return
        visited.add(id(self.grad_fn))

        for p in self.grad_fn.inputs:
            p.visualize(indent=indent + 1, visited=visited)

    def backward(self, grad=None, retain_graph=None, create_graph=False):
        """
        Backpropagate gradients through computation graph.

        Args:
            grad: initial gradient (defaults to ones for size-1 tensors).
            retain_graph (bool, optional): keep the graph for another backward.
            create_graph (bool): record the backward pass for higher-order grads.
        """
        from DiffLinalg.core.autograd.engine import backward
        backward(self, grad, retain_graph=retain_graph, create_graph=create_graph)


from DiffLinalg.core.tensor import ops  # noqa: E402
