import jax
import jax.numpy as jnp
import numpy as np
import pytest

from kernel_exp_family.config import EstimatorConfig
from kernel_exp_family.estimator import Full, Nystrom
from kernel_exp_family.kernel import GaussianKernel
from kernel_exp_family.registry import DISTRIBUTION_REGISTRY, ESTIMATOR_REGISTRY, KERNEL_REGISTRY


def test_registries():
    assert KERNEL_REGISTRY["Gaussian"] is GaussianKernel
    assert ESTIMATOR_REGISTRY == {"Nystrom": Nystrom, "Full": Full}
    assert set(DISTRIBUTION_REGISTRY) == {"Gaussian", "Banana"}


def test_from_yaml(tmp_path, data):
    path = tmp_path / "estimator.yaml"
    path.write_text(
        "estimator: Nystrom\n"
        "kernel: Gaussian\n"
        "kernel_hyper:\n"
        "  sigma: 2.0\n"
        "lmbda: 0.5\n"
        "num_basis: 4\n"
        "seed: 3\n"
    )
    cfg = EstimatorConfig.from_yaml(path)

    assert cfg == EstimatorConfig("Nystrom", "Gaussian", {"sigma": 2.0}, 0.5, 4, 3)

    est = cfg.build(data)
    assert isinstance(est, Nystrom)
    assert est.kernel.sigma == 2.0
    assert est.lmbda == 0.5
    assert est.num_basis == 4

    same = Nystrom(data, GaussianKernel(data, sigma=2.0), 0.5, 4, key=jax.random.key(3))
    np.testing.assert_array_equal(est.basis_inds, same.basis_inds)


def test_build_full(data):
    est = EstimatorConfig.from_dict({"estimator": "Full", "lmbda": 0.1}).build(data)
    assert isinstance(est, Full)
    assert est.num_basis == data.size
    est.fit()
    assert jnp.isfinite(est.log_pdf(0))


def test_unknown_names():
    with pytest.raises(KeyError, match="Gaussian"):
        EstimatorConfig(estimator="Full", kernel="Laplace")
    with pytest.raises(KeyError):
        EstimatorConfig(estimator="Lite", num_basis=3)


def test_invalid_values():
    with pytest.raises(ValueError):
        EstimatorConfig(estimator="Nystrom")
    with pytest.raises(ValueError):
        EstimatorConfig(estimator="Full", lmbda=-1.0)
