import logging

import jax, jax.numpy as jnp
import numpy as np
from jax import Array
from typing import Sequence, Tuple

from kernel_exp_family.errors import InvalidBasis

logger = logging.getLogger(__name__)


def idx_to_ai(idx: int | Array, D: int) -> Tuple[int | Array, int | Array]:
    r"""
    Splits a flat index over the product :math:`\{0..N-1\} \times \{0..D-1\}`
    into a ``(sample, coordinate)`` pair.

    Args:
        idx:
            Flat index (or integer array of indices) in ``[0, N*D)``.
        D:
            Number of coordinates (dimensions) of the data.

    Returns:
        tuple:
            ``(idx // D, idx % D)``, i.e. sample ``a`` and coordinate ``i``.
    """
    return idx // D, idx % D


def ai_to_idx(a: int | Array, i: int | Array, D: int) -> int | Array:
    """Inverse of :py:func:`idx_to_ai`."""
    return a * D + i


def validate_basis(basis: Sequence[int] | Array, N: int, D: int) -> Array:
    """
    Checks user supplied RKHS basis indices and returns them sorted.

    Args:
        basis:
            Flat indices into the ``N*D`` (sample, coordinate) pairs.
        N:
            Number of samples.
        D:
            Number of coordinates.

    Returns:
        Array:
            The indices sorted in ascending order. Shape: ``(m,)``.

    Raises:
        InvalidBasis: If the indices are empty, not a 1-D integer sequence,
            out of range or contain duplicates.
    """
    inds = np.asarray(basis)

    if inds.ndim != 1:
        raise InvalidBasis(f"Basis indices must be one-dimensional, got ndim={inds.ndim}.")
    if inds.size == 0:
        raise InvalidBasis("Basis indices must not be empty.")
    if not np.issubdtype(inds.dtype, np.integer):
        raise InvalidBasis(f"Basis indices must be integers, got dtype {inds.dtype}.")

    lo, hi = int(inds.min()), int(inds.max())
    if lo < 0 or hi >= N * D:
        raise InvalidBasis(
            f"Basis indices must lie in [0, {N * D}), got range [{lo}, {hi}]."
        )

    inds = np.sort(inds)
    if np.any(inds[1:] == inds[:-1]):
        dupes = np.unique(inds[1:][inds[1:] == inds[:-1]])
        raise InvalidBasis(f"Basis indices contain duplicates: {dupes.tolist()}.")

    return jnp.asarray(inds)


def sub_sample_basis(key: Array, N: int, D: int, m: int) -> Array:
    r"""
    Uniformly samples ``m`` distinct RKHS basis indices without replacement.

    A random permutation of :math:`0, \dots, ND-1` is drawn and its first ``m``
    entries are kept. The result is sorted so that the system assembly reads
    the data sequentially.

    Args:
        key:
            JAX random key.
        N:
            Number of samples.
        D:
            Number of coordinates.
        m:
            Number of basis functions, ``1 <= m <= N*D``.

    Returns:
        Array:
            Sorted basis indices. Shape: ``(m,)``.
    """
    if isinstance(m, bool) or not isinstance(m, (int, np.integer)):
        raise InvalidBasis(f"Number of basis functions must be an integer, got {m!r}.")
    if not 1 <= m <= N * D:
        raise InvalidBasis(f"Number of basis functions must lie in [1, {N * D}], got {m}.")

    logger.info("Using m=%d uniformly sampled RKHS basis functions.", m)

    permutation = jax.random.permutation(key, N * D)
    return jnp.sort(permutation[:m])
