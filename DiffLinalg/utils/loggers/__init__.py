from .grads_logger import GradsLogger

__all__ = [
    "GradsLogger"
]
