from .context import gpu_scope
from .context import precision_scope
from .kernels import call_kernel
from .kernels import register_kernel
from .kernels import get_kernel

__all__ = [
    "gpu_scope",
    "precision_scope",
    "call_kernel",
    "register_kernel",
    "get_kernel"
]
