import os
import csv
import json
import DiffLinalg.core.backend.backend as backend


class GradsLogger:
    """
    Gradient statistics logger.

    After a backward pass, records per-tensor and global statistics of the
    `.grad` of a set of named tensors: mean, std, norm, and the ratio of the
    gradient norm to the value norm. Non-finite gradients (e.g. from `eigh`
    on a matrix with repeated eigenvalues) are counted rather than hidden.

    Attributes:
        per_tensor (bool): Whether to record per-tensor statistics.
        log_every (int): Record only every `log_every`-th step.
        autosave (str or None): Format for autosaving logs ("json" or "csv").
        save_path (str): Directory path for saving logs.
        records (dict): Logged statistics, keyed by "step_<n>".
    """
    def __init__(self, per_tensor=True, log_every=1, autosave=None, save_path="grads_logs"):
        if autosave not in (None, "json", "csv"):
            raise ValueError("autosave must be None, 'json' or 'csv'")
        self.per_tensor = per_tensor
        self.log_every = log_every
        self.autosave = autosave
        self.save_path = save_path
        self.records = {}
        if autosave:
            os.makedirs(save_path, exist_ok=True)

    # -------------------------------
    # Core Computations
    # -------------------------------
    def _collect_accums(self, tensor):
        """Collect accumulators for a single tensor's gradient."""
        if tensor.grad is None:
            return None
        xp = backend.xp
        g = tensor.grad.data.astype(xp.float64)
        finite = xp.isfinite(g)

        g_finite = xp.where(finite, g, 0.0)
        grad_sq_sum = float(xp.sum(g_finite * g_finite))
        weight_norm = float(xp.linalg.norm(tensor.data.astype(xp.float64)))

        return {
            "grad_sum": float(xp.sum(g_finite)),
            "grad_sq_sum": grad_sq_sum,
            "count": int(xp.sum(finite)),
            "nonfinite": int(g.size - xp.sum(finite)),
            "weight_norm": weight_norm,
        }

    @staticmethod
    def _finalize_stats(acc):
        """Convert accumulators into scalar statistics."""
        count = max(acc["count"], 1)
        grad_mean = acc["grad_sum"] / count
        grad_var = acc["grad_sq_sum"] / count - grad_mean**2
        grad_norm = acc["grad_sq_sum"] ** 0.5
        return {
            "grad_norm": grad_norm,
            "grad_mean": grad_mean,
            "grad_std": max(grad_var, 0.0) ** 0.5,
            "grad/value": grad_norm / (acc["weight_norm"] + 1e-12),
            "nonfinite": acc["nonfinite"],
        }

    # -------------------------------
    # Logging
    # -------------------------------
    def log(self, tensors, step):
        """
        Collect and record gradient statistics.

        Args:
            tensors (dict): name -> Tensor. Tensors without a gradient are skipped.
            step (int): Step index used as the record key.

        Returns:
            dict or None: The stats recorded for this step.
        """
        if self.log_every > 1 and step % self.log_every != 0:
            return None

        stats = {}
        total = {"grad_sum": 0.0, "grad_sq_sum": 0.0, "count": 0, "nonfinite": 0, "weight_norm": 0.0}
        for name, tensor in tensors.items():
            acc = self._collect_accums(tensor)
            if acc is None:
                continue
            if self.per_tensor:
                for k, v in self._finalize_stats(acc).items():
                    stats[f"{name}_{k}"] = v
            for k in ("grad_sum", "grad_sq_sum", "count", "nonfinite"):
                total[k] += acc[k]
            total["weight_norm"] += acc["weight_norm"] ** 2

        total["weight_norm"] = total["weight_norm"] ** 0.5
        global_stats = self._finalize_stats(total)
        stats["total_grad_norm"] = global_stats.pop("grad_norm")
        stats.update(global_stats)

        self.records[f"step_{step}"] = stats
        self._autosave()
        return stats

    # -------------------------------
    # Export
    # -------------------------------
    def to_json(self, filepath):
        """Save all logged statistics to a JSON file."""
        with open(filepath, "w") as f:
            json.dump(self.records, f, indent=4)

    def to_csv(self, filepath):
        """Save flattened log data to CSV, one row per step."""
        flat_records = []
        for step, data in self.records.items():
            row = {"step": step}
            row.update(data)
            flat_records.append(row)

        keys = ["step"] + sorted({k for row in flat_records for k in row.keys()} - {"step"})
        with open(filepath, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=keys)
            writer.writeheader()
            writer.writerows(flat_records)

    def _autosave(self):
        """Save logs if autosave is enabled."""
        if self.autosave == "json":
            self.to_json(os.path.join(self.save_path, "grads_logs.json"))
        elif self.autosave == "csv":
            self.to_csv(os.path.join(self.save_path, "grads_logs.csv"))
