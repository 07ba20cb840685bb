class gpu_scope:
    """Context manager to temporarily switch computations to GPU."""
    def __enter__(self):
        import DiffLinalg.core.backend.backend as backend
        self.prev_using = backend.USING

        if not backend.gpu_available():
            raise RuntimeError("GPU not available.")
        backend.use_gpu()
        return backend.xp  # optional: lets user grab xp if needed

    def __exit__(self, exc_type, exc_value, tb):
        import DiffLinalg.core.backend.backend as backend
        backend.synchronize()
        if self.prev_using == "gpu":
            backend.use_gpu()
        else:
            backend.use_cpu()


class precision_scope:
    """
    Temporarily change the default floating-point precision inside a `with` block.

    Only tensors built from Python data (lists, scalars) pick up the default;
    arrays keep their own dtype.

    Args:
        dtype (str or dtype): Precision to use ("float16", "float32", "float64", xp.float64, etc.)
    """
    def __init__(self, dtype="float32"):
        import DiffLinalg.core.backend.backend as backend
        self.new_dtype = backend.resolve_dtype(dtype)

    def __enter__(self):
        import DiffLinalg.core.backend.backend as backend
        self.prev_dtype = backend.DTYPE
        backend.DTYPE = self.new_dtype
        return backend.DTYPE

    def __exit__(self, exc_type, exc_value, tb):
        import DiffLinalg.core.backend.backend as backend
        backend.DTYPE = self.prev_dtype
