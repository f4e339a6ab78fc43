import logging

import jax, jax.numpy as jnp
from jax import Array

from kernel_exp_family.errors import DimensionMismatch, Singular

logger = logging.getLogger(__name__)


def pinv_tolerance(s: Array, m: int) -> Array:
    r"""
    Cut-off below which eigenvalues are treated as zero,
    :math:`\tau = \epsilon \cdot m \cdot \max_i s_i`, as in numpy and Octave.
    """
    return jnp.finfo(s.dtype).eps * m * jnp.max(s)


def pinv_self_adjoint(matrix: Array) -> Array:
    r"""
    Computes the Moore-Penrose pseudoinverse of a symmetric matrix.

    The matrix is eigendecomposed as :math:`A = V \operatorname{diag}(s) V^\top`
    and every eigenvalue :math:`s_i > \tau` is inverted while the rest are set to
    zero, see :py:func:`pinv_tolerance`. Eigenvalues equal to the tolerance are
    truncated.

    Args:
        matrix:
            Symmetric matrix. Shape: ``(m, m)``.

    Returns:
        Array:
            The pseudoinverse :math:`V \operatorname{diag}(s^+) V^\top`. Shape: ``(m, m)``.

    Raises:
        DimensionMismatch: If the matrix is not square.
        Singular: If the eigensolver does not produce a finite decomposition.
    """
    matrix = jnp.asarray(matrix)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise DimensionMismatch(f"Matrix must be square, got shape {matrix.shape}.")
    m = matrix.shape[0]

    s, V = jnp.linalg.eigh(matrix)
    if not (jnp.all(jnp.isfinite(s)) and jnp.all(jnp.isfinite(V))):
        raise Singular(f"Eigendecomposition of the ({m}, {m}) system failed.")

    tol = pinv_tolerance(s, m)
    keep = s > tol
    inv_s = jnp.where(keep, 1.0 / jnp.where(keep, s, 1.0), 0.0)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Truncated %d of %d eigenvalues (tol=%.3e).", m - int(keep.sum()), m, tol)

    return (V * inv_s) @ V.T


def solve_system(A: Array, b: Array) -> Array:
    r"""
    Least squares solution :math:`A^+ b` of the symmetric system ``A x = b``.
    """
    return pinv_self_adjoint(A) @ b
