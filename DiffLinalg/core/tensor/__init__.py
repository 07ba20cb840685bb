from .tensor import Tensor
from . import ops

from .utils import ensure_tensor
from .utils import result_type
from .utils import trace_graph
from .utils import debug_topo

__all__ = [
    "Tensor",
    "ops",
    "ensure_tensor",
    "result_type",
    "trace_graph",
    "debug_topo"
]
