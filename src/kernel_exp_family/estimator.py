import functools
import logging
import operator

import jax, jax.numpy as jnp
import numpy as np
from jax import jit, vmap, Array
from typing import Optional, Sequence, Tuple

from kernel_exp_family.basis import idx_to_ai, sub_sample_basis, validate_basis
from kernel_exp_family.errors import DimensionMismatch, NotFittedError, OutOfRange
from kernel_exp_family.kernel import Kernel
from kernel_exp_family.linalg import solve_system

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# System assembly. The kernel is static (immutable and hashed by identity), the
# basis indices and the regulariser are traced.
# ---------------------------------------------------------------------------


def _all_pairs(N: int, D: int) -> Tuple[Array, Array]:
    # every (sample, coordinate) pair in flat index order
    return idx_to_ai(jnp.arange(N * D), D)


@functools.partial(jit, static_argnums=(0,))
def compute_h(kernel: Kernel, basis_inds: Array) -> Array:
    r"""
    Score matching vector of the basis functions,

    .. math::

        h_k = \frac{1}{N} \sum_{b=1}^{N} \sum_{j=1}^{D}
        \partial^2_{x_j} \partial_{y_{i_k}} k(x_b, x_{a_k}),

    where :math:`(a_k, i_k)` is the (sample, coordinate) pair of basis index ``k``.

    Args:
        kernel:
            Oracle bound to the training data.
        basis_inds:
            Sorted flat basis indices. Shape: ``(m,)``.

    Returns:
        Array:
            Shape ``(m,)``.
    """
    N, D = kernel.num_lhs, kernel.num_dimensions
    a, i = idx_to_ai(basis_inds, D)
    b_all, j_all = _all_pairs(N, D)

    def h_entry(a_k, i_k):
        terms = vmap(lambda b, j: kernel.k_xxy(b, a_k, j, i_k))(b_all, j_all)
        return jnp.sum(terms)

    return vmap(h_entry)(a, i) / N


@functools.partial(jit, static_argnums=(0,))
def compute_xi_norm_2(kernel: Kernel, basis_inds: Array) -> Array:
    r"""
    Squared RKHS norm of the :math:`\xi` function restricted to the basis,

    .. math::

        \lVert\xi\rVert^2 = \frac{1}{N^2} \sum_{k \in J} \sum_{b=1}^{N} \sum_{j=1}^{D}
        \partial^2_{x_{i_k}} \partial^2_{y_j} k(x_{a_k}, x_b).

    The divisor stays :math:`N^2` although the number of terms is :math:`m N D`
    rather than :math:`N^2 D^2`; estimators fitted with the full basis rely on it.
    """
    N, D = kernel.num_lhs, kernel.num_dimensions
    a, i = idx_to_ai(basis_inds, D)
    b_all, j_all = _all_pairs(N, D)

    def xi_entry(a_k, i_k):
        terms = vmap(lambda b, j: kernel.k_xxyy(a_k, b, i_k, j))(b_all, j_all)
        return jnp.sum(terms)

    return jnp.sum(vmap(xi_entry)(a, i)) / N**2


@functools.partial(jit, static_argnums=(0,))
def compute_hessians(kernel: Kernel, basis_inds: Array) -> Tuple[Array, Array]:
    r"""
    Column sub-sampled and sub-sampled kernel Hessians.

    Column ``c`` of the first matrix holds
    :math:`\partial_{x_{i_c}}\partial_{y_j} k(x_{a_c}, x_b)` for all rows
    :math:`(b, j)`; the second matrix keeps the rows of the basis indices only.

    Returns:
        tuple[Array, Array]:

            - ``G``: Shape ``(N*D, m)``.
            - ``G_hat``: ``G[basis_inds, :]``. Shape ``(m, m)``.
    """
    N, D = kernel.num_lhs, kernel.num_dimensions
    a, i = idx_to_ai(basis_inds, D)
    b_all, j_all = _all_pairs(N, D)

    def column(a_c, i_c):
        return vmap(lambda b, j: kernel.k_xy(a_c, b, i_c, j))(b_all, j_all)

    G = vmap(column, out_axes=1)(a, i)
    G_hat = G[basis_inds, :]
    return G, G_hat


@functools.partial(jit, static_argnums=(0,))
def build_system(kernel: Kernel, basis_inds: Array, lmbda: float) -> Tuple[Array, Array]:
    r"""
    Assembles the regularised score matching system :math:`A \theta = b` for
    :math:`\theta = (\alpha, \beta_1, \dots, \beta_m)`:

    .. math::

        A = \begin{pmatrix}
            \lVert h\rVert^2 / N + \lambda \lVert\xi\rVert^2 & (\hat G h / N + \lambda h)^\top \\
            \hat G h / N + \lambda h & G^\top G / N + \lambda \hat G
        \end{pmatrix},
        \qquad
        b = -\begin{pmatrix} \lVert\xi\rVert^2 \\ h \end{pmatrix}.

    The upper triangle of ``A`` is a mirror of its lower triangle, so ``A`` is
    exactly symmetric.

    Args:
        kernel:
            Oracle bound to the training data.
        basis_inds:
            Sorted flat basis indices. Shape: ``(m,)``.
        lmbda:
            Regulariser :math:`\lambda \geq 0`.

    Returns:
        tuple[Array, Array]:
            ``A`` of shape ``(m+1, m+1)`` and ``b`` of shape ``(m+1,)``.
    """
    N = kernel.num_lhs
    m = basis_inds.shape[0]

    h = compute_h(kernel, basis_inds)
    xi_norm_2 = compute_xi_norm_2(kernel, basis_inds)
    G, G_hat = compute_hessians(kernel, basis_inds)

    A = jnp.zeros((m + 1, m + 1), dtype=h.dtype)
    A = A.at[0, 0].set(jnp.dot(h, h) / N + lmbda * xi_norm_2)
    A = A.at[1:, 1:].set(G.T @ G / N + lmbda * G_hat)
    A = A.at[1:, 0].set(G_hat @ h / N + lmbda * h)
    A = jnp.tril(A) + jnp.tril(A, k=-1).T

    b = jnp.concatenate((-xi_norm_2[None], -h))
    return A, b


# ---------------------------------------------------------------------------
# Evaluators at query point ``t`` (index into the oracle's right argument).
# ---------------------------------------------------------------------------


def lift_beta(basis_inds: Array, beta: Array, size: int) -> Array:
    """
    Zero-pads the ``m`` basis coefficients into the ``N*D`` layout of the full
    estimator, ``out[basis_inds[k]] = beta[k]``.
    """
    return jnp.zeros(size, dtype=beta.dtype).at[basis_inds].set(beta)


@functools.partial(jit, static_argnums=(0,))
def _log_pdf(kernel: Kernel, basis_inds: Array, alpha_beta: Array, t) -> Array:
    N, D = kernel.num_lhs, kernel.num_dimensions
    a, i = idx_to_ai(basis_inds, D)

    xi = jnp.sum(vmap(lambda a_k, i_k: kernel.k_xx(a_k, t, i_k))(a, i))
    grads = vmap(lambda a_k, i_k: kernel.k_x(a_k, t, i_k))(a, i)
    # the basis functions are derivatives in the left argument, the query point
    # is the right argument: hence the minus
    beta_sum = -jnp.dot(grads, alpha_beta[1:])

    return alpha_beta[0] * xi / N + beta_sum


@functools.partial(jit, static_argnums=(0,))
def _grad(kernel: Kernel, basis_inds: Array, alpha_beta: Array, t) -> Array:
    N, D = kernel.num_lhs, kernel.num_dimensions
    a, i = idx_to_ai(basis_inds, D)

    # sign flip as in _log_pdf
    xi_grad = -jnp.sum(vmap(lambda a_k, i_k: kernel.k_iij(a_k, t, i_k))(a, i), axis=0)
    rows = vmap(lambda a_k, i_k: kernel.k_ij(a_k, t, i_k))(a, i)  # (m, D)
    beta_sum_grad = rows.T @ alpha_beta[1:]

    return alpha_beta[0] / N * xi_grad + beta_sum_grad


@functools.partial(jit, static_argnums=(0,))
def _hessian(kernel: Kernel, alpha: Array, beta_full: Array, t) -> Array:
    N, D = kernel.num_lhs, kernel.num_dimensions

    def per_sample(a, beta_a):
        return kernel.k_iijj_rowsum(a, t), kernel.k_ijk_dot(a, t, beta_a)

    xi_hess, beta_hess = vmap(per_sample)(jnp.arange(N), beta_full.reshape(N, D))

    # sign flip as in _log_pdf
    return alpha / N * jnp.sum(xi_hess, axis=0) - jnp.sum(beta_hess, axis=0)


@functools.partial(jit, static_argnums=(0,))
def _hessian_diag(kernel: Kernel, alpha: Array, beta_full: Array, t) -> Array:
    N, D = kernel.num_lhs, kernel.num_dimensions
    coords = jnp.arange(D)

    def per_sample(a, beta_a):
        xi_diag = vmap(lambda i: kernel.k_iijj_rowsum_component(a, t, i, i))(coords)
        beta_diag = vmap(lambda i: kernel.k_ijk_dot_component(a, t, beta_a, i, i))(coords)
        return xi_diag, beta_diag

    xi_diag, beta_diag = vmap(per_sample)(jnp.arange(N), beta_full.reshape(N, D))

    return alpha / N * jnp.sum(xi_diag, axis=0) - jnp.sum(beta_diag, axis=0)


class Estimator:
    """
    Base class for kernel exponential family estimators fitted by score matching.

    The estimator borrows the training data and a kernel oracle bound to it, and
    owns the sorted RKHS basis indices and, after :py:meth:`fit`, the coefficient
    vector :math:`\\theta = (\\alpha, \\beta)`. Evaluators read the oracle's right
    argument, which is the training data unless :py:meth:`set_test_data` is used.
    """

    name: str = "base_estimator"
    display_name: str = "base_estimator"

    def __init__(self, data: Array, kernel: Kernel, lmbda: float):
        data = jnp.asarray(data, dtype=float)
        if data.ndim != 2:
            raise DimensionMismatch(f"Data must have shape (N, D), got {data.shape}.")
        N, D = data.shape

        if kernel.num_lhs != N or kernel.num_dimensions != D:
            raise DimensionMismatch(
                f"Kernel is bound to ({kernel.num_lhs}, {kernel.num_dimensions}) "
                f"points but data has shape ({N}, {D})."
            )
        if kernel.num_rhs != N:
            raise DimensionMismatch(
                f"Kernel must be bound to the training data on both arguments, "
                f"got {kernel.num_rhs} right hand points for N={N}."
            )
        if not lmbda >= 0:
            raise ValueError(f"`lmbda` must be non-negative, got {lmbda}.")

        self.data = data
        self.kernel = kernel
        self.lmbda = float(lmbda)
        self.basis_inds: Optional[Array] = None

        self._test_kernel = kernel
        self._alpha_beta: Optional[Array] = None

    @property
    def num_samples(self) -> int:
        return self.data.shape[0]

    @property
    def num_dimensions(self) -> int:
        return self.data.shape[1]

    @property
    def num_basis(self) -> int:
        return self.basis_inds.shape[0]

    @property
    def num_test(self) -> int:
        return self._test_kernel.num_rhs

    @property
    def alpha_beta(self) -> Array:
        if self._alpha_beta is None:
            raise NotFittedError(f"{self.name} estimator has not been fitted.")
        return self._alpha_beta

    def build_system(self) -> Tuple[Array, Array]:
        """Returns the system ``(A, b)``, see :py:func:`build_system`."""
        return build_system(self.kernel, self.basis_inds, self.lmbda)

    def fit(self) -> "Estimator":
        """
        Builds and solves the score matching system and stores the coefficients.
        The system itself is not kept.
        """
        m = self.num_basis
        logger.info(
            "Building %s system: N=%d, D=%d, m=%d, lambda=%g.",
            self.name,
            self.num_samples,
            self.num_dimensions,
            m,
            self.lmbda,
        )
        A, b = self.build_system()

        logger.info("Solving system of size %d.", m + 1)
        self._alpha_beta = solve_system(A, b)
        return self

    # ---------- query points ----------

    def set_test_data(self, X: Array) -> None:
        """Evaluates at the rows of ``X`` from now on."""
        self._test_kernel = self.kernel.with_rhs(X)

    def reset_test_data(self) -> None:
        """Evaluates at the training data again."""
        self._test_kernel = self.kernel

    def _check_query(self, t) -> int:
        t = operator.index(t)
        if not 0 <= t < self.num_test:
            raise OutOfRange(f"Query index {t} outside [0, {self.num_test}).")
        return t

    def _beta_full(self) -> Array:
        # coefficients in the (N*D) layout of the full estimator
        return lift_beta(
            self.basis_inds, self.alpha_beta[1:], self.num_samples * self.num_dimensions
        )

    # ---------- evaluators ----------

    def log_pdf(self, t: int) -> Array:
        """Unnormalised log density at query point ``t``."""
        alpha_beta = self.alpha_beta
        t = self._check_query(t)
        return _log_pdf(self._test_kernel, self.basis_inds, alpha_beta, t)

    def grad(self, t: int) -> Array:
        """Gradient of the log density at query point ``t``. Shape: ``(D,)``."""
        alpha_beta = self.alpha_beta
        t = self._check_query(t)
        return _grad(self._test_kernel, self.basis_inds, alpha_beta, t)

    def hessian(self, t: int) -> Array:
        """Hessian of the log density at query point ``t``. Shape: ``(D, D)``."""
        alpha = self.alpha_beta[0]
        t = self._check_query(t)
        return _hessian(self._test_kernel, alpha, self._beta_full(), t)

    def hessian_diag(self, t: int) -> Array:
        """
        Diagonal of :py:meth:`hessian`, computed from the diagonal kernel
        components only. Shape: ``(D,)``.
        """
        alpha = self.alpha_beta[0]
        t = self._check_query(t)
        return _hessian_diag(self._test_kernel, alpha, self._beta_full(), t)

    def log_pdf_multiple(self) -> Array:
        """:py:meth:`log_pdf` at every query point. Shape: ``(N_test,)``."""
        kernel, inds, alpha_beta = self._test_kernel, self.basis_inds, self.alpha_beta
        return vmap(lambda t: _log_pdf(kernel, inds, alpha_beta, t))(jnp.arange(self.num_test))

    def grad_multiple(self) -> Array:
        """:py:meth:`grad` at every query point. Shape: ``(N_test, D)``."""
        kernel, inds, alpha_beta = self._test_kernel, self.basis_inds, self.alpha_beta
        return vmap(lambda t: _grad(kernel, inds, alpha_beta, t))(jnp.arange(self.num_test))

    def hessian_diag_multiple(self) -> Array:
        """:py:meth:`hessian_diag` at every query point. Shape: ``(N_test, D)``."""
        kernel, alpha, beta_full = self._test_kernel, self.alpha_beta[0], self._beta_full()
        return vmap(lambda t: _hessian_diag(kernel, alpha, beta_full, t))(
            jnp.arange(self.num_test)
        )

    def objective(self) -> Array:
        r"""
        Score matching objective on the query points,

        .. math::

            J = \frac{1}{N_{test}} \sum_t \left( \tfrac{1}{2} \lVert \nabla \log p(y_t) \rVert^2
            + \sum_i \partial^2_i \log p(y_t) \right).
        """
        grads = self.grad_multiple()
        diags = self.hessian_diag_multiple()
        return jnp.mean(0.5 * jnp.sum(grads**2, axis=1) + jnp.sum(diags, axis=1))

    def leverage(self) -> Array:
        raise NotImplementedError("Leverage scores are not implemented.")


class Nystrom(Estimator):
    r"""
    Nyström kernel exponential family estimator.

    Only ``m`` of the ``N*D`` (sample, coordinate) derivative directions span the
    RKHS basis, which gives an ``(m+1, m+1)`` system instead of ``(N*D+1, N*D+1)``.

    Args:
        data:
            Training data. Shape: ``(N, D)``.
        kernel:
            Derivative oracle bound to ``data``.
        lmbda:
            Regulariser :math:`\lambda \geq 0`.
        basis:
            Either an ``int`` ``m``, the number of uniformly sub-sampled basis
            indices, or a sequence of flat indices into the ``N*D`` pairs.
        key:
            JAX random key for sub-sampling. Ignored if ``basis`` is a sequence.
            Defaults to ``jax.random.key(0)``.
    """

    name: str = "Nystrom"
    display_name: str = "Nyström"

    def __init__(
        self,
        data: Array,
        kernel: Kernel,
        lmbda: float,
        basis: int | Sequence[int] | Array,
        *,
        key: Optional[Array] = None,
    ):
        super().__init__(data, kernel, lmbda)
        N, D = self.num_samples, self.num_dimensions

        if isinstance(basis, (int, np.integer)) and not isinstance(basis, bool):
            key = jax.random.key(0) if key is None else key
            self.basis_inds = sub_sample_basis(key, N, D, int(basis))
        else:
            self.basis_inds = validate_basis(basis, N, D)
            logger.info("Using m=%d user-defined RKHS basis functions.", self.num_basis)


class Full(Estimator):
    """
    Kernel exponential family estimator using every (sample, coordinate)
    derivative direction as basis, ``basis_inds = [0, N*D)``.
    """

    name: str = "Full"
    display_name: str = "Full"

    def __init__(self, data: Array, kernel: Kernel, lmbda: float):
        super().__init__(data, kernel, lmbda)
        self.basis_inds = jnp.arange(self.num_samples * self.num_dimensions)
        logger.info("Using all m=%d RKHS basis functions.", self.num_basis)

    def _beta_full(self) -> Array:
        return self.alpha_beta[1:]
