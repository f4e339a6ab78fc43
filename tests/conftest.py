import matplotlib

matplotlib.use("Agg")

import jax

jax.config.update("jax_enable_x64", True)

import jax.numpy as jnp
import pytest

from kernel_exp_family.kernel import GaussianKernel


@pytest.fixture
def key():
    return jax.random.key(42)


@pytest.fixture
def data():
    # N=5, D=2
    return jnp.array(
        [
            [0.0, 0.0],
            [1.0, 0.5],
            [-0.5, 1.0],
            [0.3, -1.2],
            [1.5, 1.0],
        ]
    )


@pytest.fixture
def kernel(data):
    return GaussianKernel(data, sigma=1.0)


@pytest.fixture
def random_data(key):
    # N=6, D=2
    return 0.8 * jax.random.normal(key, (6, 2))
