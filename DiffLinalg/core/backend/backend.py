"""
Backend runtime selector for DiffLinalg.

- Single import point for array backend (`xp`) and core runtime flags.
- Seamlessly toggle CPU (NumPy) / GPU (CuPy).
- Centralized default dtype, RNG seed and the grad-recording switch.
- Minimal API surface with global-access pattern:
    >>> import DiffLinalg.core.backend.backend as backend
    >>> xp = backend.xp
    >>> DTYPE = backend.DTYPE

The grad-recording flag is thread-local; everything else is process-wide.
"""

from __future__ import annotations

import threading
import numpy as _np
from contextlib import contextmanager
from DiffLinalg.backend.config import CONFIG


# ---------------------------
# Optional GPU backend (CuPy)
# ---------------------------
try:
    import cupy as _cp
    _CUPY_AVAILABLE = True
except Exception:
    _cp = None
    _CUPY_AVAILABLE = False


# ---------------------------
# Public runtime state (globals)
# ---------------------------
xp = _np                       # current array module (NumPy or CuPy)
USING = "cpu"                  # "cpu" | "gpu"
SEED = CONFIG.get("seed", 997)
VERBOSE = bool(CONFIG.get("verbose", False))

DTYPE = _np.float32            # default dtype for tensors built from Python data

# Autograd switch (default for threads that never touched the flag)
AUTOGRAD_ENABLED = bool(CONFIG.get("autograd", True))
_GRAD_STATE = threading.local()

_DTYPE_MAP = {"float16": _np.float16, "float32": _np.float32, "float64": _np.float64}


def log(msg: str):
    """Print a backend notice when verbose mode is on."""
    if VERBOSE:
        print(f"[DiffLinalg] {msg}")


# ===========================
# Introspection / utilities
# ===========================
def gpu_available() -> bool:
    """Return True if CuPy is importable and at least one GPU is accessible."""
    return _CUPY_AVAILABLE


def is_gpu() -> bool:
    """Return True if current backend is GPU (CuPy)."""
    return USING == "gpu"


def device_name() -> str:
    """Human-readable device name."""
    if is_gpu() and _cp is not None:
        try:
            dev_id = _cp.cuda.Device().id
            props = _cp.cuda.runtime.getDeviceProperties(dev_id)
            name = props.get("name", b"GPU").decode(errors="ignore")
            return f"GPU:{dev_id} ({name})"
        except Exception:
            return "GPU (CuPy)"
    return "CPU (NumPy)"


def get_device() -> str:
    """Return current device string: 'cpu' or 'gpu'."""
    return USING


def synchronize():
    """Block until all queued ops on the current device are complete."""
    if is_gpu() and _cp is not None:
        _cp.cuda.Stream.null.synchronize()


def to_numpy(arr):
    """Return `arr` as a NumPy array (copy if it lives on the GPU)."""
    if _cp is not None and isinstance(arr, _cp.ndarray):
        return _cp.asnumpy(arr)
    return _np.asarray(arr)


# ===========================
# Backend switching
# ===========================
def use_gpu():
    """
    Switch backend to GPU (CuPy).
    Raises ImportError if CuPy is not available.
    """
    global xp, USING
    if not _CUPY_AVAILABLE:
        raise ImportError("CuPy is not installed. Run `pip install cupy` to use GPU.")
    xp = _cp
    USING = "gpu"
    _cp.random.seed(SEED)
    log(f"Using {device_name()}")


def use_cpu():
    """Switch backend to CPU (NumPy)."""
    global xp, USING
    xp = _np
    USING = "cpu"
    _np.random.seed(SEED)
    log(f"Using {device_name()}")


def _auto_select_device():
    device = str(CONFIG.get("device", "cpu")).lower()
    if device == "gpu" and _CUPY_AVAILABLE:
        use_gpu()
    else:
        if device == "gpu":
            log("GPU requested but CuPy is not available; falling back to CPU.")
        use_cpu()


# ===========================
# Runtime configuration
# ===========================
def set_seed(seed: int):
    """Set RNG seed for both NumPy and CuPy (if present)."""
    global SEED
    SEED = int(seed)
    _np.random.seed(SEED)
    if _CUPY_AVAILABLE:
        _cp.random.seed(SEED)


def set_dtype(dtype="float32"):
    """
    Set the default DTYPE used when tensors are built from Python data.
    Accepts "float16", "float32", "float64" or the corresponding dtype object.
    """
    global DTYPE
    DTYPE = resolve_dtype(dtype)


def resolve_dtype(dtype):
    if isinstance(dtype, str):
        if dtype not in _DTYPE_MAP:
            raise ValueError(f"Unsupported dtype '{dtype}'. Use one of: {list(_DTYPE_MAP.keys())}")
        return _DTYPE_MAP[dtype]
    return _np.dtype(dtype).type


def dtype_or_default(dtype=None):
    """`dtype`, or the default DTYPE when it is None."""
    return DTYPE if dtype is None else dtype


def set_verbose(enabled: bool = True):
    """Enable/disable backend notices."""
    global VERBOSE
    VERBOSE = bool(enabled)


# Initialize from config
set_dtype(CONFIG.get("dtype", "float32"))
_auto_select_device()


# ===========================
# Autograd guards
# ===========================
def is_grad_enabled() -> bool:
    """Return whether autograd recording is enabled in the current thread."""
    return getattr(_GRAD_STATE, "enabled", AUTOGRAD_ENABLED)


def set_grad_enabled(mode: bool):
    """Set grad recording for the current thread. Returns the previous mode."""
    prev = is_grad_enabled()
    _GRAD_STATE.enabled = bool(mode)
    return prev


@contextmanager
def no_grad():
    _prev = set_grad_enabled(False)
    try:
        yield
    finally:
        set_grad_enabled(_prev)


@contextmanager
def enable_grad():
    _prev = set_grad_enabled(True)
    try:
        yield
    finally:
        set_grad_enabled(_prev)
