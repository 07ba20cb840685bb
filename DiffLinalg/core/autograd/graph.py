"""
Graph-building side of autograd.

A routine computes its outputs as plain arrays, then describes how to
differentiate them:

    bb = BackwardBuilder("multiply", (a, b), out)
    bt = bb.create_target(0)
    if bt:
        b_tok = bb.retain_input(1)
        bt.define(lambda bctx: bctx.output_grad() * bctx.get_retained_input(b_tok))
    bb.finalize()

Each target is one differentiable input. Its closure receives a
BackwardContext and returns the gradient for that input. Closures must reach
forward-time values only through retained tokens.
"""

import weakref

import DiffLinalg.core.backend.backend as backend
from DiffLinalg.core.exceptions import GradientError


class RetainedInputToken:
    __slots__ = ("index",)

    def __init__(self, index):
        self.index = index

    def redeem(self, bctx):
        return bctx.get_retained_input(self)


class RetainedOutputToken:
    __slots__ = ("index",)

    def __init__(self, index):
        self.index = index

    def redeem(self, bctx):
        return bctx.get_retained_output(self)


class OpNode:
    """
    One recorded forward call.

    Holds the inputs, the output metadata, one backward closure per
    differentiable input, and the retained values those closures need.
    Outputs are referenced weakly so a node never keeps its own outputs alive.
    """

    def __init__(self, name, inputs, outputs):
        self.name = name
        self.inputs = tuple(inputs)
        self.output_meta = [(o.shape, o.dtype) for o in outputs]
        self.backward_fns = {}
        self._retained_inputs = {}
        self._retained_outputs = {}
        self.released = False

    @property
    def num_outputs(self):
        return len(self.output_meta)

    def next_nodes(self):
        """Producer nodes of this node's differentiable inputs."""
        nodes = []
        for idx in self.backward_fns:
            fn = self.inputs[idx].grad_fn
            if fn is not None:
                nodes.append(fn)
        return nodes

    def release(self):
        """Drop closures and retained values once backward has used them."""
        self.backward_fns = {}
        self._retained_inputs = {}
        self._retained_outputs = {}
        self.released = True

    def __repr__(self):
        state = ", released" if self.released else ""
        return f"<{self.name}Backward inputs={len(self.inputs)} outputs={self.num_outputs}{state}>"


class Target:
    """Handle for defining the gradient of one input of a forward call."""

    def __init__(self, builder, index):
        self._builder = builder
        self.index = index

    def define(self, fn):
        """
        Bind the backward closure for this input.

        Args:
            fn (callable): fn(bctx) -> Tensor, the gradient w.r.t. input `index`.
                Returning None means "no contribution".
        """
        node = self._builder.node
        if self.index in node.backward_fns:
            raise GradientError(f"{node.name}: gradient for input {self.index} is already defined")
        node.backward_fns[self.index] = fn

    def __bool__(self):
        return True


class BackwardBuilder:
    """
    Registers gradient rules for one forward call.

    Args:
        name (str): Op name, shown in graph dumps and errors.
        inputs (Tensor or sequence of Tensor): Forward inputs, by position.
        outputs (Tensor or sequence of Tensor): Forward outputs, by position.
    """

    def __init__(self, name, inputs, outputs):
        self.inputs = _as_tuple(inputs)
        self.outputs = _as_tuple(outputs)
        self.node = OpNode(name, self.inputs, self.outputs)
        self._output_refs = [weakref.ref(o) for o in self.outputs]
        self._finalized = False

    def create_target(self, index):
        """
        Returns:
            Target, or None if input `index` needs no gradient (it does not
            require grad, or grad recording is disabled).
        """
        if not backend.is_grad_enabled():
            return None
        if not self.inputs[index].requires_grad:
            return None
        return Target(self, index)

    def retain_input(self, index):
        self.node._retained_inputs[index] = self.inputs[index]
        return RetainedInputToken(index)

    def retain_output(self, index):
        out = self.outputs[index]
        self.node._retained_outputs[index] = (self._output_refs[index], out.data)
        return RetainedOutputToken(index)

    def finalize(self):
        """
        Attach the node to the outputs if any target was defined.

        Without a defined target the outputs stay constants.
        """
        if self._finalized:
            raise GradientError(f"{self.node.name}: backward builder finalized twice")
        self._finalized = True
        if not self.node.backward_fns:
            return
        for i, out in enumerate(self.outputs):
            out.requires_grad = True
            out.is_leaf = False
            out.grad_fn = self.node
            out.output_index = i


class BackwardContext:
    """What a backward closure can see while computing one input gradient."""

    def __init__(self, node, output_grads, input_index):
        self.node = node
        self._output_grads = output_grads
        self.input_index = input_index

    @property
    def output_grads(self):
        return tuple(self._output_grads)

    def output_grad(self, index=0):
        """Gradient w.r.t. output `index`, or None if nothing downstream needed it."""
        return self._output_grads[index]

    def output_grad_or_zeros(self, index=0):
        """Gradient w.r.t. output `index`, with an absent gradient read as zeros."""
        g = self._output_grads[index]
        if g is not None:
            return g
        from DiffLinalg.core.tensor import ops
        shape, dtype = self.node.output_meta[index]
        return ops.zeros(shape, dtype=dtype)

    def get_retained_input(self, token):
        try:
            return self.node._retained_inputs[token.index]
        except KeyError:
            raise GradientError(f"{self.node.name}: input {token.index} was not retained "
                                "(or the graph was already released)") from None

    def get_retained_output(self, token):
        try:
            ref, data = self.node._retained_outputs[token.index]
        except KeyError:
            raise GradientError(f"{self.node.name}: output {token.index} was not retained "
                                "(or the graph was already released)") from None
        out = ref()
        if out is None:
            from DiffLinalg.core.tensor.tensor import Tensor
            out = Tensor(data, dtype=data.dtype)
        return out


def _as_tuple(x):
    if isinstance(x, (list, tuple)):
        return tuple(x)
    return (x,)
