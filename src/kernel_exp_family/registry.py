from kernel_exp_family.kernel import GaussianKernel

from kernel_exp_family.estimator import Nystrom, Full

from kernel_exp_family.distribution import GaussianDistribution, BananaDistribution

KERNEL_REGISTRY = {cls.name: cls for cls in [GaussianKernel]}

ESTIMATOR_REGISTRY = {cls.name: cls for cls in [Nystrom, Full]}

DISTRIBUTION_REGISTRY = {
    cls.name: cls for cls in [GaussianDistribution, BananaDistribution]
}
