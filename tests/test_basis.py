import jax
import jax.numpy as jnp
import numpy as np
import pytest

from kernel_exp_family.basis import ai_to_idx, idx_to_ai, sub_sample_basis, validate_basis
from kernel_exp_family.errors import InvalidBasis


@pytest.mark.parametrize("N, D", [(1, 1), (5, 2), (3, 7), (10, 3)])
def test_codec_round_trip(N, D):
    for k in range(N * D):
        a, i = idx_to_ai(k, D)
        assert 0 <= a < N
        assert 0 <= i < D
        assert a * D + i == k
        assert ai_to_idx(a, i, D) == k


def test_codec_on_arrays():
    a, i = idx_to_ai(jnp.array([0, 4, 9]), 2)
    np.testing.assert_array_equal(a, [0, 2, 4])
    np.testing.assert_array_equal(i, [0, 0, 1])


def test_validate_basis_sorts():
    inds = validate_basis([9, 0, 4], N=5, D=2)
    np.testing.assert_array_equal(inds, [0, 4, 9])


@pytest.mark.parametrize(
    "basis",
    [
        [],
        [0, 4, 4],
        [0, 10],
        [-1, 3],
        [[0, 1], [2, 3]],
        [0.0, 1.0],
    ],
)
def test_validate_basis_rejects(basis):
    with pytest.raises(InvalidBasis):
        validate_basis(basis, N=5, D=2)


def test_sub_sample_basis_sorted_and_distinct(key):
    inds = np.asarray(sub_sample_basis(key, N=20, D=3, m=15))
    assert inds.shape == (15,)
    assert np.all(np.diff(inds) > 0)
    assert inds.min() >= 0 and inds.max() < 60


def test_sub_sample_basis_deterministic():
    first = sub_sample_basis(jax.random.key(7), N=10, D=2, m=10)
    second = sub_sample_basis(jax.random.key(7), N=10, D=2, m=10)
    np.testing.assert_array_equal(first, second)


def test_sub_sample_basis_full_is_all_indices(key):
    np.testing.assert_array_equal(sub_sample_basis(key, N=4, D=3, m=12), np.arange(12))


@pytest.mark.parametrize("m", [0, 11, -2])
def test_sub_sample_basis_size_out_of_range(key, m):
    with pytest.raises(InvalidBasis):
        sub_sample_basis(key, N=5, D=2, m=m)
