import logging

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from kernel_exp_family.errors import DimensionMismatch, Singular
from kernel_exp_family.linalg import pinv_self_adjoint, pinv_tolerance, solve_system

EPS = np.finfo(np.float64).eps


def _random_symmetric(key, eigenvalues):
    m = len(eigenvalues)
    Q, _ = jnp.linalg.qr(jax.random.normal(key, (m, m)))
    return (Q * jnp.asarray(eigenvalues)) @ Q.T


@pytest.mark.parametrize(
    "eigenvalues",
    [
        [4.0, 3.0, 2.0, 1.0],
        [3.0, 2.0, 1.5, 1.0, 0.0, 0.0],
        [2.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0],
    ],
)
def test_penrose_identities(key, eigenvalues):
    m = len(eigenvalues)
    M = _random_symmetric(key, eigenvalues)
    P = pinv_self_adjoint(M)
    tol = 10 * EPS * m * jnp.linalg.norm(M)

    # P M P carries the rounding of M scaled by |P|^2, so the bound on M grows with it
    assert jnp.max(jnp.abs(P @ M @ P - P)) <= tol * max(1.0, float(jnp.linalg.norm(P)) ** 2)
    assert jnp.max(jnp.abs(M @ P @ M - M)) <= tol


def test_pinv_of_indefinite_matrix(key):
    # negative eigenvalues are below the tolerance and are truncated
    M = jnp.diag(jnp.array([3.0, -2.0, 1.0]))
    np.testing.assert_allclose(pinv_self_adjoint(M), jnp.diag(jnp.array([1 / 3.0, 0.0, 1.0])))


def test_tolerance_rule_on_diagonal():
    m = 4
    s_max = 2.0
    tau = EPS * m * s_max
    s = jnp.array([s_max, 1.0, tau, 0.5 * tau])

    P = pinv_self_adjoint(jnp.diag(s))

    assert pinv_tolerance(s, m) == tau
    np.testing.assert_allclose(jnp.diag(P), [1 / s_max, 1.0, 0.0, 0.0])
    assert jnp.count_nonzero(P - jnp.diag(jnp.diag(P))) == 0


def test_tolerance_rule_inverts_just_above_tolerance():
    m = 3
    tau = EPS * m * 1.0
    s = jnp.array([1.0, 4.0 * tau, 0.0])
    P = pinv_self_adjoint(jnp.diag(s))
    np.testing.assert_allclose(jnp.diag(P), [1.0, 1.0 / (4.0 * tau), 0.0])


def test_solve_system_nonsingular(key):
    M = _random_symmetric(key, [5.0, 4.0, 3.0, 2.0, 1.0])
    b = jnp.arange(5.0)
    x = solve_system(M, b)
    np.testing.assert_allclose(M @ x, b, atol=1e-10)


def test_non_square_raises():
    with pytest.raises(DimensionMismatch):
        pinv_self_adjoint(jnp.ones((2, 3)))


def test_failed_eigensolver_raises():
    M = jnp.eye(3).at[1, 1].set(jnp.nan)
    with pytest.raises(Singular):
        pinv_self_adjoint(M)


def test_penrose_identities_with_small_inverse(key):
    # every kept eigenvalue is at least 2, so |P| <= 1 and the bound is used as is
    eigenvalues = [4.0, 3.0, 2.0, 2.0, 0.0, 0.0]
    m = len(eigenvalues)
    M = _random_symmetric(key, eigenvalues)
    P = pinv_self_adjoint(M)
    tol = 10 * EPS * m * jnp.linalg.norm(M)

    assert jnp.linalg.norm(P) <= 1.0
    assert jnp.max(jnp.abs(P @ M @ P - P)) <= tol
    assert jnp.max(jnp.abs(M @ P @ M - M)) <= tol


def test_truncation_is_logged_only_at_debug(caplog):
    M = jnp.diag(jnp.array([2.0, 1.0, 0.0]))

    with caplog.at_level(logging.INFO, logger="kernel_exp_family.linalg"):
        pinv_self_adjoint(M)
    assert "Truncated" not in caplog.text

    with caplog.at_level(logging.DEBUG, logger="kernel_exp_family.linalg"):
        pinv_self_adjoint(M)
    assert "Truncated 1 of 3 eigenvalues" in caplog.text
