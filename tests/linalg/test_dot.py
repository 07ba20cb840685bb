"""
Tests for the generalized dot product.

Validates:
    - Result shapes and values against numpy.dot for every rank combination
    - Contracted-size mismatches fail before any kernel call
    - Scalar operands degrade to elementwise multiplication
    - Zero-sized contractions give zeros without a kernel call
    - Gradients (concrete values, finite differences, second order)
"""

import numpy as np
import pytest

import DiffLinalg.core.backend.backend as backend
from DiffLinalg import Tensor, DimensionError, dot, grad
from DiffLinalg.core.backend.kernels import register_kernel, get_kernel
from DiffLinalg.core.tensor import ops
from DiffLinalg.utils import check_grad


# ═══════════════════════════════════════════════════════════════════════
# Concrete scenario
# ═══════════════════════════════════════════════════════════════════════


class TestConcreteScenario:

    def test_forward(self, tensor):
        a = tensor([[1, 2], [3, 4]])
        b = tensor([[5, 6], [7, 8]])
        np.testing.assert_allclose(dot(a, b).numpy(), [[19, 22], [43, 50]])

    def test_backward(self, tensor):
        a = tensor([[1, 2], [3, 4]], requires_grad=True)
        b = tensor([[5, 6], [7, 8]], requires_grad=True)
        out = dot(a, b)
        out.backward(tensor([[1, 1], [1, 1]]))
        np.testing.assert_allclose(a.grad.numpy(), [[11, 15], [11, 15]])
        np.testing.assert_allclose(b.grad.numpy(), [[4, 4], [6, 6]])

    def test_tensor_method(self, tensor):
        a = tensor([[1, 2], [3, 4]])
        b = tensor([[5, 6], [7, 8]])
        np.testing.assert_allclose(a.dot(b).numpy(), [[19, 22], [43, 50]])


# ═══════════════════════════════════════════════════════════════════════
# Shapes and values
# ═══════════════════════════════════════════════════════════════════════


SHAPE_PAIRS = [
    ((3,), (3,)),
    ((2, 3), (3,)),
    ((3,), (3, 4)),
    ((2, 3), (3, 4)),
    ((2, 5, 3), (3, 4)),
    ((2, 3), (4, 3, 5)),
    ((2, 6, 3), (4, 3, 5)),
    ((3,), (2, 3, 4)),
    ((2, 3), (5, 2, 3, 4)),
    ((0, 3), (3, 2)),
    ((2, 3), (3, 0)),
]


class TestShapes:

    @pytest.mark.parametrize("a_shape, b_shape", SHAPE_PAIRS)
    def test_matches_numpy_dot(self, rng, a_shape, b_shape):
        a = rng.standard_normal(a_shape)
        b = rng.standard_normal(b_shape)
        out = dot(Tensor(a), Tensor(b))
        expected = np.dot(a, b)
        assert out.shape == expected.shape
        np.testing.assert_allclose(out.numpy(), expected, rtol=1e-12, atol=1e-12)

    @pytest.mark.parametrize("a_shape, b_shape", [
        ((2, 3), (4, 5)),
        ((3,), (4,)),
        ((2, 3), (2, 4, 5)),
        ((2, 3), (5, 2, 2, 4)),
    ])
    def test_mismatch_raises_before_kernel(self, rng, kernel_calls, a_shape, b_shape):
        a = Tensor(rng.standard_normal(a_shape))
        b = Tensor(rng.standard_normal(b_shape))
        with pytest.raises(DimensionError) as excinfo:
            dot(a, b)
        assert excinfo.value.expected == a_shape[-1]
        assert kernel_calls["dot"] == 0

    def test_single_kernel_call_for_batched_operands(self, rng, kernel_calls):
        a = Tensor(rng.standard_normal((2, 6, 3)))
        b = Tensor(rng.standard_normal((4, 3, 5)))
        dot(a, b)
        assert kernel_calls["dot"] == 1


# ═══════════════════════════════════════════════════════════════════════
# Degenerate operands
# ═══════════════════════════════════════════════════════════════════════


class TestScalarOperand:

    @pytest.mark.parametrize("shape", [(), (4,), (2, 3), (2, 3, 4)])
    def test_equals_elementwise_multiply(self, rng, kernel_calls, shape):
        s = Tensor(np.array(2.5))
        b = Tensor(np.asarray(rng.standard_normal(shape)))
        np.testing.assert_allclose(dot(s, b).numpy(), 2.5 * b.numpy())
        np.testing.assert_allclose(dot(b, s).numpy(), b.numpy() * 2.5)
        assert kernel_calls["dot"] == 0

    def test_gradient_is_multiply_gradient(self, tensor):
        s = tensor(3.0, requires_grad=True)
        b = tensor([[1.0, 2.0], [3.0, 4.0]], requires_grad=True)
        dot(s, b).sum().backward()
        assert s.grad.item() == pytest.approx(10.0)
        np.testing.assert_allclose(b.grad.numpy(), np.full((2, 2), 3.0))
        assert s.grad.shape == ()

    def test_explicit_dtype_is_applied(self, tensor):
        s = tensor(2.0)
        b = tensor([1.0, 2.0])
        assert dot(s, b, out_dtype=np.float32).dtype == np.float32


class TestZeroContraction:

    @pytest.mark.parametrize("a_shape, b_shape, out_shape", [
        ((2, 0), (0, 3), (2, 3)),
        ((0,), (0,), ()),
        ((2, 0), (4, 0, 5), (2, 4, 5)),
    ])
    def test_returns_zeros_without_kernel(self, kernel_calls, a_shape, b_shape, out_shape):
        a = Tensor(np.ones(a_shape))
        b = Tensor(np.ones(b_shape))
        out = dot(a, b)
        assert out.shape == out_shape
        assert np.all(out.numpy() == 0)
        assert kernel_calls["dot"] == 0

    def test_works_with_broken_kernel(self):
        def broken(*args):
            raise AssertionError("kernel must not be called")

        prev = register_kernel("dot", broken)
        try:
            out = dot(Tensor(np.ones((3, 0))), Tensor(np.ones((0, 2))))
        finally:
            register_kernel("dot", prev)
        assert out.shape == (3, 2)

    def test_result_is_constant(self, tensor):
        a = Tensor(np.ones((2, 0)), requires_grad=True)
        b = Tensor(np.ones((0, 3)), requires_grad=True)
        out = dot(a, b)
        assert not out.requires_grad
        assert out.grad_fn is None

    def test_result_dtype(self):
        a = Tensor(np.ones((2, 0), dtype=np.float32))
        b = Tensor(np.ones((0, 3), dtype=np.float64))
        assert dot(a, b).dtype == np.float64
        assert dot(a, b, out_dtype=np.float32).dtype == np.float32


# ═══════════════════════════════════════════════════════════════════════
# Dtypes
# ═══════════════════════════════════════════════════════════════════════


class TestDtypes:

    def test_promotes_by_default(self, rng):
        a = Tensor(rng.standard_normal((2, 3)).astype(np.float32))
        b = Tensor(rng.standard_normal((3, 2)))
        assert dot(a, b).dtype == np.float64

    def test_gradients_keep_operand_dtypes(self, rng):
        a = Tensor(rng.standard_normal((2, 3)).astype(np.float32), requires_grad=True)
        b = Tensor(rng.standard_normal((3, 2)), requires_grad=True)
        out = dot(a, b, out_dtype=np.float64)
        out.sum().backward()
        assert a.grad.dtype == np.float32
        assert b.grad.dtype == np.float64


# ═══════════════════════════════════════════════════════════════════════
# Gradients
# ═══════════════════════════════════════════════════════════════════════


class TestGradients:

    @pytest.mark.parametrize("m, k, n", [(2, 3, 4), (3, 1, 2), (1, 4, 1), (1, 1, 1)])
    def test_matrix_gradients_match_finite_differences(self, rng, m, k, n):
        a = Tensor(rng.standard_normal((m, k)), requires_grad=True)
        b = Tensor(rng.standard_normal((k, n)), requires_grad=True)
        g = rng.standard_normal((m, n))
        assert check_grad(dot, [a, b], grad_output=g)

    def test_matrix_gradients_match_closed_form(self, rng):
        a = Tensor(rng.standard_normal((3, 2)), requires_grad=True)
        b = Tensor(rng.standard_normal((2, 4)), requires_grad=True)
        g = rng.standard_normal((3, 4))
        dot(a, b).backward(Tensor(g))
        np.testing.assert_allclose(a.grad.numpy(), g @ b.numpy().T)
        np.testing.assert_allclose(b.grad.numpy(), a.numpy().T @ g)

    @pytest.mark.parametrize("a_shape, b_shape", [
        ((2, 3, 4), (4, 2)),
        ((3, 4), (2, 4, 3)),
        ((2, 3), (3,)),
        ((3,), (3, 2)),
    ])
    def test_batched_gradients_match_finite_differences(self, rng, a_shape, b_shape):
        a = Tensor(rng.standard_normal(a_shape), requires_grad=True)
        b = Tensor(rng.standard_normal(b_shape), requires_grad=True)
        g = rng.standard_normal(np.dot(a.numpy(), b.numpy()).shape)
        assert check_grad(dot, [a, b], grad_output=g)

    def test_only_required_operand_is_retained(self, rng):
        a = Tensor(rng.standard_normal((2, 3)), requires_grad=True)
        b = Tensor(rng.standard_normal((3, 2)))
        out = dot(a, b)
        node = out.grad_fn.inputs[0].grad_fn
        assert node.name == "dot"
        assert set(node.backward_fns) == {0}
        assert set(node._retained_inputs) == {1}

    def test_no_rule_when_nothing_requires_grad(self, rng):
        out = dot(Tensor(rng.standard_normal((2, 3))), Tensor(rng.standard_normal((3, 2))))
        assert not out.requires_grad
        assert out.grad_fn is None

    def test_second_order(self, tensor):
        # L = sum(A . A) => dL/dA = 1 A^T + A^T 1, and sum(dL/dA) = 2n * sum(A)
        a = tensor([[1.0, 2.0], [3.0, 4.0]], requires_grad=True)
        loss = dot(a, a).sum()
        (g,) = grad(loss, [a], create_graph=True)
        ones = np.ones((2, 2))
        np.testing.assert_allclose(g.numpy(), ones @ a.numpy().T + a.numpy().T @ ones)
        assert g.requires_grad

        g.sum().backward()
        np.testing.assert_allclose(a.grad.numpy(), np.full((2, 2), 4.0))

    def test_first_order_gradient_is_constant(self, tensor):
        a = tensor([[1.0, 2.0], [3.0, 4.0]], requires_grad=True)
        (g,) = grad(dot(a, a).sum(), [a])
        assert not g.requires_grad


# ═══════════════════════════════════════════════════════════════════════
# Kernel dispatch
# ═══════════════════════════════════════════════════════════════════════


class TestKernelDispatch:

    def test_kernel_runs_without_recording(self, rng):
        seen = []
        original = get_kernel("dot")

        def spy(*args):
            seen.append(backend.is_grad_enabled())
            return original(*args)

        prev = register_kernel("dot", spy)
        try:
            out = dot(Tensor(rng.standard_normal((2, 3)), requires_grad=True),
                      Tensor(rng.standard_normal((3, 2))))
        finally:
            register_kernel("dot", prev)
        assert seen == [False]
        assert backend.is_grad_enabled()
        assert out.requires_grad

    def test_grad_mode_restored_after_kernel_failure(self, rng):
        def failing(*args):
            raise RuntimeError("kernel failure")

        prev = register_kernel("dot", failing)
        try:
            with pytest.raises(RuntimeError, match="kernel failure"):
                dot(Tensor(rng.standard_normal((2, 3))), Tensor(rng.standard_normal((3, 2))))
        finally:
            register_kernel("dot", prev)
        assert backend.is_grad_enabled()

    def test_no_grad_scope_suppresses_rule(self, rng):
        a = Tensor(rng.standard_normal((2, 3)), requires_grad=True)
        with backend.no_grad():
            out = dot(a, Tensor(rng.standard_normal((3, 2))))
        assert not out.requires_grad

    def test_reshape_back_to_output(self, rng):
        a = Tensor(rng.standard_normal((2, 5, 3)), requires_grad=True)
        b = Tensor(rng.standard_normal((4, 3, 2)), requires_grad=True)
        out = dot(a, b)
        assert out.shape == (2, 5, 4, 2)
        assert out.grad_fn.name == "reshape"
        assert ops.sum(out).requires_grad
