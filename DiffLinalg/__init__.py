from .core import Tensor
from .core import ops
from .core import backward
from .core import grad
from .core import no_grad
from .core import enable_grad
from .core import is_grad_enabled
from .core import set_grad_enabled
from .core import DiffLinalgError
from .core import ValidationError
from .core import DimensionError
from .core import GradientError

from . import linalg
from .linalg import dot
from .linalg import eigh
from .linalg import eigvalsh

__version__ = "0.1.0"

__all__ = [
    "Tensor",
    "ops",
    "backward",
    "grad",
    "no_grad",
    "enable_grad",
    "is_grad_enabled",
    "set_grad_enabled",
    "DiffLinalgError",
    "ValidationError",
    "DimensionError",
    "GradientError",
    "linalg",
    "dot",
    "eigh",
    "eigvalsh"
]
