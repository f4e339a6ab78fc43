import functools
import jax, jax.numpy as jnp
from jax import jit, vmap, Array
from typing import Optional, Any

from kernel_exp_family.errors import DimensionMismatch


class Kernel:
    r"""
    Kernel derivative oracle bound to data.

    The left argument ``x_a`` always indexes the training data ``lhs`` (shape
    ``(N, D)``), the right argument ``y_b`` indexes the query points ``rhs``
    (shape ``(N_rhs, D)``, defaults to ``lhs``). Every derivative is taken
    literally, i.e. ``y`` derivatives are derivatives with respect to the right
    argument, so for translation-invariant kernels
    :math:`\partial_{y} = -\partial_{x}`.

    Oracles are immutable: use :py:meth:`with_rhs` to evaluate at other points.
    All index methods are pure functions of their arguments and can be ``vmap``-ed.
    """

    name: str = "base_kernel"  # class attribute
    display_name: str = "base_kernel"

    def __init__(self, lhs: Array, rhs: Optional[Array] = None, **hyper: Any):
        lhs = jnp.asarray(lhs, dtype=float)
        rhs = lhs if rhs is None else jnp.asarray(rhs, dtype=float)

        if lhs.ndim != 2:
            raise DimensionMismatch(f"lhs must have shape (N, D), got {lhs.shape}.")
        if rhs.ndim != 2:
            raise DimensionMismatch(f"rhs must have shape (N_rhs, D), got {rhs.shape}.")
        if lhs.shape[1] != rhs.shape[1]:
            raise DimensionMismatch(
                f"lhs and rhs dimensions differ: {lhs.shape[1]} != {rhs.shape[1]}."
            )

        self.lhs = lhs
        self.rhs = rhs
        self._hyper = dict(hyper)

    @property
    def num_lhs(self) -> int:
        return self.lhs.shape[0]

    @property
    def num_rhs(self) -> int:
        return self.rhs.shape[0]

    @property
    def num_dimensions(self) -> int:
        return self.lhs.shape[1]

    @property
    def hyper(self) -> dict:
        return dict(self._hyper)

    def with_rhs(self, rhs: Array) -> "Kernel":
        """
        Returns a new oracle with the same training data and hyperparameters,
        bound to the query points ``rhs``.
        """
        return type(self)(self.lhs, rhs, **self._hyper)

    def _difference(self, a, b) -> Array:
        return self.lhs[a] - self.rhs[b]

    def _pair(self, x: Array, y: Array) -> Array:
        raise NotImplementedError  # k(x, y)

    def __call__(self, X: Optional[Array] = None, Y: Optional[Array] = None) -> Array:
        """
        Evaluates the Gram matrix of plain kernel values.

        Args:
            X:
                A shape ``(n, d)`` array of samples. Defaults to ``lhs``.
            Y:
                A shape ``(m, d)`` array of samples. Defaults to ``rhs``.

        Returns:
            Array:
                The shape ``(n, m)`` Gram matrix.
        """
        X = self.lhs if X is None else jnp.atleast_2d(X)
        Y = self.rhs if Y is None else jnp.atleast_2d(Y)

        def gram(A, B):
            return vmap(lambda x: vmap(lambda y: self._pair(x, y))(B))(A)

        return jit(gram)(X, Y)

    # ---------- derivative oracle, implemented by subclasses ----------

    def k(self, a, b) -> Array:
        raise NotImplementedError  # k(x_a, y_b)

    def k_x(self, a, b, i) -> Array:
        raise NotImplementedError  # d/dx_i

    def k_xx(self, a, b, i) -> Array:
        raise NotImplementedError  # d^2/dx_i^2

    def k_xy(self, a, b, i, j) -> Array:
        raise NotImplementedError  # d^2/dx_i dy_j

    def k_xxy(self, a, b, i, j) -> Array:
        raise NotImplementedError  # d^3/dx_i^2 dy_j

    def k_xxyy(self, a, b, i, j) -> Array:
        raise NotImplementedError  # d^4/dx_i^2 dy_j^2

    def k_iij(self, a, b, i) -> Array:
        raise NotImplementedError  # d^3/dx_i^2 dx_j, over j

    def k_ij(self, a, b, i) -> Array:
        raise NotImplementedError  # d^2/dx_i dx_j, over j

    def k_iijj_rowsum(self, a, b) -> Array:
        raise NotImplementedError  # sum_l d^4/dx_i dx_j dx_l^2

    def k_ijk_dot(self, a, b, v: Array) -> Array:
        raise NotImplementedError  # sum_l v_l d^3/dx_i dx_j dx_l

    def k_iijj_rowsum_component(self, a, b, i, j) -> Array:
        """Entry ``(i, j)`` of :py:meth:`k_iijj_rowsum`."""
        return self.k_iijj_rowsum(a, b)[i, j]

    def k_ijk_dot_component(self, a, b, v: Array, i, j) -> Array:
        """Entry ``(i, j)`` of :py:meth:`k_ijk_dot`."""
        return self.k_ijk_dot(a, b, v)[i, j]


class GaussianKernel(Kernel):
    r"""
    Gaussian kernel

    .. math::

        k(x, y) = \exp\left(-\frac{\lVert x - y \rVert^2}{\sigma}\right).

    With :math:`d = x - y` and :math:`c = 2/\sigma` every derivative is a
    polynomial in :math:`d` times :math:`k`, e.g.
    :math:`\partial_{x_i} k = -c\, d_i\, k` and
    :math:`\partial_{x_i}\partial_{x_j} k = (c^2 d_i d_j - c\,\delta_{ij})\, k`.
    """

    name: str = "Gaussian"
    display_name: str = "Gaussian (RBF)"

    def __init__(self, lhs: Array, rhs: Optional[Array] = None, *, sigma: float = 1.0):
        if not sigma > 0:
            raise ValueError(f"`sigma` must be positive, got {sigma}.")
        super().__init__(lhs, rhs, sigma=float(sigma))

    @property
    def sigma(self) -> float:
        return self._hyper["sigma"]

    def _pair(self, x: Array, y: Array) -> Array:
        diff = x - y
        return jnp.exp(-jnp.dot(diff, diff) / self.sigma)

    def _terms(self, a, b) -> tuple[Array, Array, float]:
        # d = x_a - y_b, k(x_a, y_b), c = 2 / sigma
        d = self._difference(a, b)
        k = jnp.exp(-jnp.dot(d, d) / self.sigma)
        return d, k, 2.0 / self.sigma

    @functools.partial(jit, static_argnums=(0,))
    def k(self, a, b) -> Array:
        _, k, _ = self._terms(a, b)
        return k

    @functools.partial(jit, static_argnums=(0,))
    def k_x(self, a, b, i) -> Array:
        r"""
        First derivative in the left argument,
        :math:`\partial_{x_i} k = -c\, d_i\, k`.

        Args:
            a:
                Index into ``lhs``.
            b:
                Index into ``rhs``.
            i:
                Coordinate index.

        Returns:
            Array:
                Scalar derivative.
        """
        d, k, c = self._terms(a, b)
        return -c * d[i] * k

    @functools.partial(jit, static_argnums=(0,))
    def k_xx(self, a, b, i) -> Array:
        r"""
        Second derivative in the left argument along a single coordinate,
        :math:`\partial^2_{x_i} k = (c^2 d_i^2 - c)\, k`.
        """
        d, k, c = self._terms(a, b)
        return (c**2 * d[i] ** 2 - c) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_xy(self, a, b, i, j) -> Array:
        r"""
        Mixed second derivative,
        :math:`\partial_{x_i}\partial_{y_j} k = (c\,\delta_{ij} - c^2 d_i d_j)\, k`.
        """
        d, k, c = self._terms(a, b)
        return (c * (i == j) - c**2 * d[i] * d[j]) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_xxy(self, a, b, i, j) -> Array:
        r"""
        Third derivative, twice in the left argument and once in the right,

        .. math::

            \partial^2_{x_i}\partial_{y_j} k
            = \left(c^3 d_i^2 d_j - c^2 (d_j + 2\,\delta_{ij} d_i)\right) k.
        """
        d, k, c = self._terms(a, b)
        return (c**3 * d[i] ** 2 * d[j] - c**2 * (d[j] + 2.0 * (i == j) * d[i])) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_xxyy(self, a, b, i, j) -> Array:
        r"""
        Fourth derivative, twice in each argument,

        .. math::

            \partial^2_{x_i}\partial^2_{y_j} k
            = \left(c^4 d_i^2 d_j^2 - c^3 (d_i^2 + d_j^2 + 4\,\delta_{ij} d_i d_j)
            + c^2 (1 + 2\,\delta_{ij})\right) k.
        """
        d, k, c = self._terms(a, b)
        delta = i == j
        return (
            c**4 * d[i] ** 2 * d[j] ** 2
            - c**3 * (d[i] ** 2 + d[j] ** 2 + 4.0 * delta * d[i] * d[j])
            + c**2 * (1.0 + 2.0 * delta)
        ) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_iij(self, a, b, i) -> Array:
        r"""
        Row :math:`j \mapsto \partial^2_{x_i}\partial_{x_j} k
        = \left(-c^3 d_i^2 d_j + c^2 (d_j + 2\,\delta_{ij} d_i)\right) k`.

        Returns:
            Array:
                Shape ``(D,)``.
        """
        d, k, c = self._terms(a, b)
        e_i = jnp.arange(d.shape[0]) == i
        return (-(c**3) * d[i] ** 2 * d + c**2 * (d + 2.0 * d[i] * e_i)) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_ij(self, a, b, i) -> Array:
        r"""
        Row :math:`j \mapsto \partial_{x_i}\partial_{x_j} k
        = (c^2 d_i d_j - c\,\delta_{ij})\, k` of the left argument Hessian.

        Returns:
            Array:
                Shape ``(D,)``.
        """
        d, k, c = self._terms(a, b)
        e_i = jnp.arange(d.shape[0]) == i
        return (c**2 * d[i] * d - c * e_i) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_iijj_rowsum(self, a, b) -> Array:
        r"""
        Fourth derivatives summed over the repeated coordinate,

        .. math::

            \sum_l \partial_{x_i}\partial_{x_j}\partial^2_{x_l} k
            = \left(c^4 \lVert d\rVert^2 d_i d_j
            - c^3 \big((D + 4) d_i d_j + \delta_{ij} \lVert d\rVert^2\big)
            + c^2 (D + 2)\,\delta_{ij}\right) k.

        Returns:
            Array:
                Shape ``(D, D)``.
        """
        d, k, c = self._terms(a, b)
        D = d.shape[0]
        sq = jnp.dot(d, d)
        outer = jnp.outer(d, d)
        eye = jnp.eye(D, dtype=d.dtype)
        return (
            c**4 * sq * outer
            - c**3 * ((D + 4) * outer + sq * eye)
            + c**2 * (D + 2) * eye
        ) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_iijj_rowsum_component(self, a, b, i, j) -> Array:
        d, k, c = self._terms(a, b)
        D = d.shape[0]
        sq = jnp.dot(d, d)
        delta = i == j
        return (
            c**4 * sq * d[i] * d[j]
            - c**3 * ((D + 4) * d[i] * d[j] + delta * sq)
            + c**2 * (D + 2) * delta
        ) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_ijk_dot(self, a, b, v: Array) -> Array:
        r"""
        Third derivative tensor contracted with a vector,

        .. math::

            \sum_l v_l\, \partial_{x_i}\partial_{x_j}\partial_{x_l} k
            = \left(-c^3 (d \cdot v)\, d_i d_j
            + c^2 \big(\delta_{ij} (d \cdot v) + v_i d_j + v_j d_i\big)\right) k.

        Args:
            a:
                Index into ``lhs``.
            b:
                Index into ``rhs``.
            v:
                Contraction vector of shape ``(D,)``.

        Returns:
            Array:
                Shape ``(D, D)``.
        """
        d, k, c = self._terms(a, b)
        dv = jnp.dot(d, v)
        eye = jnp.eye(d.shape[0], dtype=d.dtype)
        return (
            -(c**3) * dv * jnp.outer(d, d)
            + c**2 * (dv * eye + jnp.outer(v, d) + jnp.outer(d, v))
        ) * k

    @functools.partial(jit, static_argnums=(0,))
    def k_ijk_dot_component(self, a, b, v: Array, i, j) -> Array:
        d, k, c = self._terms(a, b)
        dv = jnp.dot(d, v)
        return (
            -(c**3) * dv * d[i] * d[j]
            + c**2 * ((i == j) * dv + v[i] * d[j] + v[j] * d[i])
        ) * k
