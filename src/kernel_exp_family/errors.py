import numpy as np


class KernelExpFamilyError(Exception):
    """Base class for errors raised by the kernel exponential family estimators."""


class InvalidBasis(KernelExpFamilyError, ValueError):
    """RKHS basis indices are empty, out of range or contain duplicates."""


class DimensionMismatch(KernelExpFamilyError, ValueError):
    """A kernel, data set or matrix has inconsistent shape."""


class Singular(KernelExpFamilyError, np.linalg.LinAlgError):
    """The symmetric eigensolver failed on the linear system."""


class OutOfRange(KernelExpFamilyError, IndexError):
    """An evaluator was called with a query index outside the query points."""


class NotFittedError(KernelExpFamilyError, RuntimeError):
    """An evaluator was called before ``fit()``."""
