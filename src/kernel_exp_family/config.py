from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import jax
import yaml
from jax import Array

from kernel_exp_family.estimator import Estimator
from kernel_exp_family.registry import ESTIMATOR_REGISTRY, KERNEL_REGISTRY


def _lookup(registry: dict, name: str, what: str):
    try:
        return registry[name]
    except KeyError:
        raise KeyError(
            f"Unknown {what} {name!r}, expected one of {sorted(registry)}."
        ) from None


@dataclass(frozen=True)
class EstimatorConfig:
    """
    Everything needed to build an estimator on a data set.

    Attributes:
        estimator:
            Name in ``ESTIMATOR_REGISTRY`` (``"Nystrom"`` or ``"Full"``).
        kernel:
            Name in ``KERNEL_REGISTRY``.
        kernel_hyper:
            Keyword arguments of the kernel, e.g. ``{"sigma": 1.0}``.
        lmbda:
            Regulariser.
        num_basis:
            Number of uniformly sampled basis functions (Nyström only).
        seed:
            Seed of the basis sub-sampling key.
    """

    estimator: str = "Nystrom"
    kernel: str = "Gaussian"
    kernel_hyper: dict = field(default_factory=dict)
    lmbda: float = 1.0
    num_basis: Optional[int] = None
    seed: int = 0

    def __post_init__(self):
        _lookup(ESTIMATOR_REGISTRY, self.estimator, "estimator")
        _lookup(KERNEL_REGISTRY, self.kernel, "kernel")
        if self.lmbda < 0:
            raise ValueError(f"`lmbda` must be non-negative, got {self.lmbda}.")
        if self.estimator == "Nystrom" and self.num_basis is None:
            raise ValueError("`num_basis` is required for the Nystrom estimator.")

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "EstimatorConfig":
        return cls(
            estimator=cfg.get("estimator", "Nystrom"),
            kernel=cfg.get("kernel", "Gaussian"),
            kernel_hyper=dict(cfg.get("kernel_hyper") or {}),
            lmbda=float(cfg.get("lmbda", 1.0)),
            num_basis=None if cfg.get("num_basis") is None else int(cfg["num_basis"]),
            seed=int(cfg.get("seed", 0)),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "EstimatorConfig":
        with open(path) as f:
            cfg = yaml.safe_load(f) or {}
        return cls.from_dict(cfg)

    def build(self, data: Array, key: Optional[Array] = None) -> Estimator:
        """
        Binds the kernel to ``data`` and constructs the (unfitted) estimator.
        ``key`` overrides the key derived from ``seed``.
        """
        kernel = _lookup(KERNEL_REGISTRY, self.kernel, "kernel")(data, **self.kernel_hyper)
        cls = _lookup(ESTIMATOR_REGISTRY, self.estimator, "estimator")

        if self.estimator == "Nystrom":
            key = jax.random.key(self.seed) if key is None else key
            return cls(data, kernel, self.lmbda, self.num_basis, key=key)
        return cls(data, kernel, self.lmbda)
