import numpy as np

import DiffLinalg.core.backend.backend as backend
from .tensor import Tensor


def ensure_tensor(obj, dtype=None):
    """
    Ensure the input is a Tensor.
    Scalars, lists, numpy/cupy arrays get wrapped automatically.
    """
    if isinstance(obj, Tensor):
        return obj
    return Tensor(obj, dtype=dtype)

def result_type(*args):
    """
    Common dtype of several tensors/arrays/dtypes, following NumPy promotion.

    Python scalars do not promote tensors (a float32 tensor times 2.0 stays
    float32), matching NumPy's value-based rules for scalars.

    Returns:
        np.dtype: Promoted dtype.
    """
    dtype_list = []
    for d in args:
        if hasattr(d, "dtype"):   # Tensor or array
            dtype_list.append(d.dtype)
        elif isinstance(d, (int, float, bool, complex)):
            continue
        else:                     # Already a dtype
            dtype_list.append(np.dtype(d))
    if not dtype_list:
        return np.dtype(backend.DTYPE)
    return np.result_type(*dtype_list)

def trace_graph(tensor, depth=0, visited=None):
    """Print the graph below `tensor`, one line per node."""
    if visited is None:
        visited = set()
    node = tensor.grad_fn
    name = node.name if node is not None else "leaf"
    print("  " * depth + f"Tensor(id={id(tensor)}, grad_fn={name}, shape={tensor.shape})")
    if node is None or id(node) in visited:
        return
    visited.add(id(node))
    for p in node.inputs:
        trace_graph(p, depth + 1, visited)

def debug_topo(tensor: Tensor):
    """
    Prints the autograd graph in topological order.
    Shows each node's name and output shapes.

    Returns:
        list[str]: The node names in the order printed.
    """
    topo = []
    visited = set()

    def build(node):
        if node is None or id(node) in visited:
            return
        visited.add(id(node))
        for inp in node.inputs:
            build(inp.grad_fn)
        topo.append(node)

    build(tensor.grad_fn)

    for node in topo:
        print(f"{node.name} -> {[shape for shape, _ in node.output_meta]}")
    return [node.name for node in topo]
