import dataclasses
import logging
import time

import jax, jax.numpy as jnp
from jax import Array
import matplotlib.pyplot as plt
import seaborn as sns
from typing import Optional, Sequence

from kernel_exp_family.config import EstimatorConfig
from kernel_exp_family.distribution import Distribution
from kernel_exp_family.estimator import Estimator

logger = logging.getLogger(__name__)


def score_error(estimator: Estimator, true_scores: Array) -> Array:
    """
    Mean squared error between the estimated and true scores at the query points.
    """
    diff = estimator.grad_multiple() - true_scores
    return jnp.mean(jnp.sum(diff**2, axis=1))


def plot_basis_size(result_df, metric: str = "objective", title: Optional[str] = None):
    """
    Line plot of ``metric`` against the number of basis functions ``m`` for the
    Nyström rows of ``result_df``, with the mean of the full estimator as a
    dashed reference line.
    """
    df = result_df.copy()
    nystrom = df[df["estimator"] == "Nystrom"]
    full = df[df["estimator"] == "Full"]

    fig, ax = plt.subplots(figsize=(5, 3.5))
    sns.lineplot(data=nystrom, x="m", y=metric, marker="o", errorbar="se", ax=ax, label="Nyström")

    if len(full) > 0:
        ax.axhline(full[metric].mean(), color="black", linestyle="--", linewidth=1, label="Full")

    ax.set_xlabel(r"$m$", fontsize=10)
    ax.set_ylabel(metric.replace("_", " "), fontsize=10)
    ax.legend()
    if title is not None:
        ax.set_title(title, fontsize=12)
    fig.tight_layout()

    return fig, ax


class BasisSizeExperiment:

    def __init__(
        self,
        dist: Distribution,
        train: Array,
        test: Array,
        config: EstimatorConfig,
    ):
        """
        Compares Nyström estimators of increasing basis size with the full estimator.

        Args:
            dist (Distribution): The target distribution, provides the true scores.
            train (Array): Training samples of shape ``(N, D)``.
            test (Array): Held out samples of shape ``(N_test, D)`` used for evaluation.
            config (EstimatorConfig): Kernel, regulariser and seed shared by all fits.
        """
        self.dist = dist
        self.X = train
        self.X_test = test
        self.true_scores = dist.score(test)  # true scores at the test points

        self.n, self.d = self.X.shape
        self.config = config

    def _run_one(self, estimator: Estimator) -> dict:
        start = time.perf_counter()
        estimator.fit()
        estimator.alpha_beta.block_until_ready()
        fit_time = time.perf_counter() - start

        estimator.set_test_data(self.X_test)
        row = {
            "estimator": estimator.name,
            "m": estimator.num_basis,
            "objective": float(estimator.objective()),
            "score_error": float(score_error(estimator, self.true_scores)),
            "fit_time": fit_time,
        }
        logger.info("%s (m=%d): objective %.4f", row["estimator"], row["m"], row["objective"])
        return row

    def __call__(
        self, key: Array, basis_sizes: Sequence[int], include_full: bool = True
    ) -> list[dict]:
        """
        Fits one Nyström estimator per basis size, and the full estimator if requested.

        Args:
            key:
                JAX random key, split once per Nyström fit.
            basis_sizes:
                Numbers of basis functions ``m``, each in ``[1, N*D]``.
            include_full:
                Whether to also fit the full estimator.

        Returns:
            A list of row dictionaries with the estimator name, ``m``, objective,
            score error and fit time.
        """
        rows = []

        if include_full:
            cfg = dataclasses.replace(self.config, estimator="Full", num_basis=None)
            rows.append(self._run_one(cfg.build(self.X)))

        for m in basis_sizes:
            key, subkey = jax.random.split(key, 2)
            cfg = dataclasses.replace(self.config, estimator="Nystrom", num_basis=int(m))
            rows.append(self._run_one(cfg.build(self.X, key=subkey)))

        return rows
