"""
Tests for the Tensor class.
"""

import numpy as np
import pytest

import DiffLinalg.core.backend.backend as backend
from DiffLinalg import Tensor
from DiffLinalg.core.tensor import trace_graph, debug_topo


class TestConstruction:

    def test_python_data_uses_default_dtype(self):
        assert Tensor([1.0, 2.0]).dtype == np.dtype(backend.DTYPE)

    def test_arrays_keep_dtype(self):
        assert Tensor(np.ones(2, dtype=np.float64)).dtype == np.float64
        assert Tensor(np.float64(1.0)).dtype == np.float64

    def test_explicit_dtype(self):
        assert Tensor([1, 2], dtype=np.float64).dtype == np.float64
        assert Tensor(np.ones(2), dtype=np.float32).dtype == np.float32

    def test_from_tensor(self, tensor):
        a = tensor([1.0, 2.0])
        np.testing.assert_array_equal(Tensor(a).numpy(), a.numpy())

    def test_leaf_state(self, tensor):
        a = tensor([1.0], requires_grad=True)
        assert a.is_leaf and a.requires_grad
        assert a.grad is None and a.grad_fn is None

    def test_properties(self, tensor):
        a = tensor(np.zeros((2, 3)))
        assert a.shape == (2, 3)
        assert a.ndim == 2
        assert a.size == 6
        assert len(a) == 2

    def test_classmethods(self):
        assert Tensor.zeros((2,), dtype=np.float64).dtype == np.float64
        np.testing.assert_array_equal(Tensor.ones((2,)).numpy(), [1, 1])
        np.testing.assert_array_equal(Tensor.eye(2).numpy(), np.eye(2))
        assert Tensor.randn((2, 3)).shape == (2, 3)


class TestPythonIntegration:

    def test_scalar_len_raises(self, tensor):
        with pytest.raises(TypeError):
            len(tensor(1.0))

    def test_bool(self, tensor):
        assert bool(tensor([1.0]))
        with pytest.raises(ValueError):
            bool(tensor([1.0, 2.0]))

    def test_item(self, tensor):
        assert tensor([[3.5]]).item() == 3.5
        with pytest.raises(ValueError):
            tensor([1.0, 2.0]).item()

    def test_repr(self, tensor):
        a = tensor([1.0, 2.0], requires_grad=True)
        assert "requires_grad=True" in repr(a)
        assert "grad_fn=multiply" in repr(a * 2.0)

    def test_repr_truncates_long_rows(self):
        text = repr(Tensor(np.arange(200.0).reshape(2, 100)))
        assert "..." in text
        assert "99.0" not in text
        assert "[0.0, 1.0, 2.0]..." in text

    def test_repr_short_vector_in_full(self):
        assert "data=[1.0, 2.0, 3.0])" in repr(Tensor(np.array([1.0, 2.0, 3.0])))


class TestUtilities:

    def test_detach(self, tensor):
        a = tensor([1.0], requires_grad=True)
        d = (a * 2.0).detach()
        assert not d.requires_grad and d.grad_fn is None

    def test_clone_is_a_copy(self, tensor):
        a = tensor([1.0, 2.0])
        c = a.clone()
        c.data[0] = 5.0
        assert a.numpy()[0] == 1.0

    def test_requires_grad_(self, tensor):
        a = tensor([1.0]).requires_grad_()
        assert a.requires_grad
        b = a * 2.0
        with pytest.raises(RuntimeError):
            b.requires_grad_(False)

    def test_retain_grad_needs_requires_grad(self, tensor):
        with pytest.raises(RuntimeError):
            tensor([1.0]).retain_grad()

    def test_transpose_helpers(self, tensor):
        a = tensor(np.arange(6.0).reshape(2, 3))
        assert a.T.shape == (3, 2)
        assert a.transpose((1, 0)).shape == (3, 2)
        assert a.flatten().shape == (6,)

    def test_graph_dumps(self, tensor, capsys):
        x = tensor([1.0, 2.0], requires_grad=True)
        y = (x * x).sum()
        names = debug_topo(y)
        assert names == ["multiply", "sum"]
        trace_graph(y)
        y.visualize()
        out = capsys.readouterr().out
        assert "grad_fn=sum" in out
        assert "<- multiply" in out
