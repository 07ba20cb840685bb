from .dot import dot
from .eigen import eigh
from .eigen import eigvalsh
from .shapes import check_dot_shapes
from .shapes import dot_output_shape
from .shapes import contracted_sizes
from .shapes import b_matrix_axes

__all__ = [
    "dot",
    "eigh",
    "eigvalsh",
    "check_dot_shapes",
    "dot_output_shape",
    "contracted_sizes",
    "b_matrix_axes"
]
