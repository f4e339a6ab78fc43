import jax
import jax.numpy as jnp
import numpy as np
import pytest

from kernel_exp_family.distribution import BananaDistribution, GaussianDistribution


def test_gaussian_score(key):
    mean = jnp.array([1.0, -1.0])
    cov = jnp.array([[2.0, 0.3], [0.3, 1.0]])
    dist = GaussianDistribution(mean, cov)

    X = dist.sample(key, 5)
    assert X.shape == (5, 2)

    expected = -(X - mean) @ jnp.linalg.inv(cov).T
    np.testing.assert_allclose(dist.score(X), expected, rtol=1e-10, atol=1e-12)


def test_gaussian_log_prob_at_mean():
    dist = GaussianDistribution(jnp.zeros(3))
    np.testing.assert_allclose(dist.log_prob(jnp.zeros(3)), -1.5 * jnp.log(2 * jnp.pi))


def test_gaussian_rejects_bad_cov():
    with pytest.raises(ValueError):
        GaussianDistribution(jnp.zeros(2), jnp.eye(3))


def test_banana_score(key):
    b, V = 0.1, 4.0
    dist = BananaDistribution(dim=3, bananicity=b, V=V)

    Y = dist.sample(key, 4)
    assert Y.shape == (4, 3)

    x1 = Y[:, 1] - b * (Y[:, 0] ** 2 - V)
    expected = jnp.stack(
        [-Y[:, 0] / V + x1 * 2 * b * Y[:, 0], -x1, -Y[:, 2]],
        axis=1,
    )
    np.testing.assert_allclose(dist.score(Y), expected, rtol=1e-10, atol=1e-12)


def test_banana_log_prob_batches(key):
    dist = BananaDistribution()
    Y = dist.sample(key, 6)
    batched = dist.log_prob(Y)
    single = jnp.array([dist.log_prob(y) for y in Y])
    np.testing.assert_allclose(batched, single, rtol=1e-12)


def test_banana_rejects_one_dimension():
    with pytest.raises(ValueError):
        BananaDistribution(dim=1)
