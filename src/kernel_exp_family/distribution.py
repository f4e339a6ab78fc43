from jax import grad
from typing import Optional

import jax
import jax.numpy as jnp
from jax import Array
from jax.scipy.stats import multivariate_normal


class Distribution:
    """
    Target distribution with a known log density, used to draw training data and
    to compare estimated scores with true ones.
    """

    name: str = "base_distribution"

    @property
    def dim(self) -> int:
        raise NotImplementedError

    def log_prob(self, x: Array) -> Array:
        raise NotImplementedError

    def score(self, x: Array) -> Array:
        # Vectorise the gradient calculation
        grad_fn = jax.vmap(grad(lambda single_x: self.log_prob(single_x).sum()))
        return grad_fn(jnp.atleast_2d(x))

    def sample(self, key: Array, num_samples: int) -> Array:
        """
        Sample `num_samples` from the distribution with a provided JAX key.
        """
        raise NotImplementedError


class GaussianDistribution(Distribution):
    """Multivariate normal :math:`\\mathcal{N}(\\mu, \\Sigma)`."""

    name: str = "Gaussian"

    def __init__(self, mean: Array, cov: Optional[Array] = None):
        mean = jnp.atleast_1d(jnp.asarray(mean, dtype=float))
        if mean.ndim != 1:
            raise ValueError("`mean` must be a 1-D array.")
        d = mean.shape[0]

        cov = jnp.eye(d) if cov is None else jnp.asarray(cov, dtype=float)
        if cov.shape != (d, d):
            raise ValueError(f"`cov` must have shape ({d}, {d}), got {cov.shape}.")

        self.mean = mean
        self.cov = cov

    @property
    def dim(self) -> int:
        return self.mean.shape[0]

    def log_prob(self, x: Array) -> Array:
        return multivariate_normal.logpdf(x, self.mean, self.cov)

    def sample(self, key: Array, num_samples: int) -> Array:
        return jax.random.multivariate_normal(key, self.mean, self.cov, shape=(num_samples,))


class BananaDistribution(Distribution):
    r"""
    Banana shaped distribution: a Gaussian
    :math:`x \sim \mathcal{N}(0, \operatorname{diag}(V, 1, \dots, 1))` twisted as
    :math:`y_2 = x_2 + b\,(x_1^2 - V)`. The twist has unit Jacobian so the log
    density is the Gaussian one at the untwisted point.
    """

    name: str = "Banana"

    def __init__(self, dim: int = 2, bananicity: float = 0.03, V: float = 100.0):
        if dim < 2:
            raise ValueError("`dim` must be at least 2.")
        if not V > 0:
            raise ValueError("`V` must be positive.")
        self._dim = int(dim)
        self.bananicity = float(bananicity)
        self.V = float(V)

    @property
    def dim(self) -> int:
        return self._dim

    def _variances(self) -> Array:
        return jnp.ones(self._dim).at[0].set(self.V)

    def _untwist(self, y: Array) -> Array:
        x1 = y[..., 1] - self.bananicity * (y[..., 0] ** 2 - self.V)
        return y.at[..., 1].set(x1)

    def log_prob(self, y: Array) -> Array:
        x = self._untwist(jnp.asarray(y, dtype=float))
        var = self._variances()
        return -0.5 * jnp.sum(x**2 / var + jnp.log(2 * jnp.pi * var), axis=-1)

    def sample(self, key: Array, num_samples: int) -> Array:
        x = jax.random.normal(key, (num_samples, self._dim)) * jnp.sqrt(self._variances())
        y1 = x[:, 1] + self.bananicity * (x[:, 0] ** 2 - self.V)
        return x.at[:, 1].set(y1)
