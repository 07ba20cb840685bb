"""
Reverse-mode traversal.

Nodes are visited in reverse topological order, so every node has received
the gradients of all its consumers before its closures run. Gradients that
reach the same tensor along several paths are summed.
"""

import numpy as np

import DiffLinalg.core.backend.backend as backend
from DiffLinalg.core.exceptions import GradientError
from DiffLinalg.core.autograd.graph import BackwardContext
from DiffLinalg.core.tensor.tensor import Tensor
from DiffLinalg.core.tensor import ops


def _toposort(roots):
    """Return nodes reachable from `roots`, consumers before producers."""
    order, visited = [], set()
    for root in roots:
        if root is None or id(root) in visited:
            continue
        visited.add(id(root))
        stack = [(root, iter(root.next_nodes()))]
        while stack:
            node, children = stack[-1]
            advanced = False
            for child in children:
                if id(child) not in visited:
                    visited.add(id(child))
                    stack.append((child, iter(child.next_nodes())))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                order.append(node)
    order.reverse()
    return order


def _accumulate(current, g):
    if current is None:
        return g
    return ops.add(current, g)


def _run_backward(tensors, grad_tensors, retain_graph, create_graph, capture=None):
    """
    Shared driver for backward() and grad().

    With `capture` (a sequence of tensors) gradients are collected for those
    tensors and returned; `.grad` attributes are left untouched. Without it,
    leaf tensors (and non-leaf tensors that asked via retain_grad) accumulate
    into `.grad`.
    """
    node_grads = {}
    captured = {}
    capture_ids = {id(t) for t in capture} if capture is not None else None

    def deliver(t, g):
        for hook in t._grad_hooks:
            new_grad = hook(g)
            if new_grad is not None:
                g = new_grad

        if capture_ids is not None:
            if id(t) in capture_ids:
                captured[id(t)] = _accumulate(captured.get(id(t)), g)
        elif t.grad_fn is None or t._retain_grad:
            t.grad = _accumulate(t.grad, g)

        if t.grad_fn is not None:
            key = (id(t.grad_fn), t.output_index)
            node_grads[key] = _accumulate(node_grads.get(key), g)

    roots = []
    for t, g in zip(tensors, grad_tensors):
        if not t.requires_grad:
            continue
        deliver(t, g)
        roots.append(t.grad_fn)

    order = _toposort(roots)
    for node in order:
        if node.released:
            raise GradientError(
                f"Trying to backward through {node!r} a second time. "
                "Pass retain_graph=True to the first backward call if this is intended."
            )

    for node in order:
        out_grads = [node_grads.pop((id(node), i), None) for i in range(node.num_outputs)]
        if all(g is None for g in out_grads):
            if not retain_graph:
                node.release()
            continue

        mode = backend.enable_grad() if create_graph else backend.no_grad()
        with mode:
            for idx in sorted(node.backward_fns):
                fn = node.backward_fns[idx]
                inp = node.inputs[idx]
                g = fn(BackwardContext(node, out_grads, idx))
                if g is None:
                    continue
                if g.shape != inp.shape:
                    raise GradientError(
                        f"{node.name}: gradient for input {idx} has shape {g.shape}, "
                        f"expected {inp.shape}"
                    )
                deliver(inp, g)

        if not retain_graph:
            node.release()

    return captured


def _normalize(tensors, grad_tensors):
    if isinstance(tensors, Tensor):
        tensors = [tensors]
    tensors = list(tensors)
    if grad_tensors is None:
        grad_tensors = [None] * len(tensors)
    elif isinstance(grad_tensors, (Tensor, np.ndarray, backend.xp.ndarray)):
        grad_tensors = [grad_tensors]
    grad_tensors = list(grad_tensors)
    if len(grad_tensors) != len(tensors):
        raise GradientError("grad_tensors must match tensors in length")

    seeds = []
    for t, g in zip(tensors, grad_tensors):
        if g is None:
            if t.size != 1:
                raise GradientError("Grad must be specified for non-scalar outputs")
            g = ops.ones(t.shape, dtype=t.dtype)
        else:
            g = g if isinstance(g, Tensor) else Tensor(backend.xp.asarray(g), dtype=t.dtype)
            if g.shape != t.shape:
                raise GradientError(f"Seed gradient has shape {g.shape}, expected {t.shape}")
            if g.dtype != t.dtype:
                g = ops.astype(g, t.dtype)
        seeds.append(g)
    return tensors, seeds


def backward(tensors, grad_tensors=None, retain_graph=None, create_graph=False):
    """
    Backpropagate from `tensors` and accumulate into `.grad` of leaf tensors.

    Args:
        tensors (Tensor or sequence): Outputs to differentiate.
        grad_tensors (Tensor or sequence, optional): Seed gradients. May be
            omitted for size-1 outputs (seeded with ones).
        retain_graph (bool, optional): Keep closures and retained values for
            another pass. Defaults to `create_graph`.
        create_graph (bool): Record the backward computation so the
            resulting gradients can be differentiated again.
    """
    if retain_graph is None:
        retain_graph = create_graph
    tensors, seeds = _normalize(tensors, grad_tensors)
    _run_backward(tensors, seeds, retain_graph, create_graph)


def grad(outputs, inputs, grad_outputs=None, retain_graph=None, create_graph=False, allow_unused=False):
    """
    Compute and return gradients of `outputs` w.r.t. `inputs`.

    `.grad` attributes are not modified.

    Returns:
        tuple: One entry per input. An input that does not influence the
        outputs raises GradientError, or yields None with `allow_unused=True`.
    """
    if retain_graph is None:
        retain_graph = create_graph
    single = isinstance(inputs, Tensor)
    inputs = [inputs] if single else list(inputs)
    outputs, seeds = _normalize(outputs, grad_outputs)
    captured = _run_backward(outputs, seeds, retain_graph, create_graph, capture=inputs)

    result = []
    for i, t in enumerate(inputs):
        g = captured.get(id(t))
        if g is None and not allow_unused:
            raise GradientError(f"Input {i} was not used to compute the outputs "
                                "(pass allow_unused=True to get None instead)")
        result.append(g)
    return tuple(result)
