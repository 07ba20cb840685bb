from .graph import BackwardBuilder
from .graph import BackwardContext
from .graph import Target
from .graph import OpNode
from .graph import RetainedInputToken
from .graph import RetainedOutputToken

__all__ = [
    "BackwardBuilder",
    "BackwardContext",
    "Target",
    "OpNode",
    "RetainedInputToken",
    "RetainedOutputToken"
]
