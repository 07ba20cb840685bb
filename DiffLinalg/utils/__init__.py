from .gradcheck import numerical_grad
from .gradcheck import check_grad
from .loggers import GradsLogger

__all__ = [
    "numerical_grad",
    "check_grad",
    "GradsLogger"
]
