"""1-D Gaussian mixture fitted by expectation-maximization.

Used to derive the theoretical abscissa offset of each key slice index from
the offsets observed across the staves of a system.
"""

import logging

import numpy as np
from scipy.special import logsumexp
from scipy.stats import norm

logger = logging.getLogger(__name__)


class Gaussian:
    def __init__(self, mean, sigma=1.0):
        self.mean = float(mean)
        self.sigma = float(sigma)

    def __repr__(self):
        return f"Gaussian(mean={self.mean:.2f}, sigma={self.sigma:.2f})"


def em(values, laws, max_iterations=100, tolerance=1e-6, update_sigma=False):
    """Refine the means (and optionally sigmas) of ``laws`` over ``values``.

    Args:
        values: 1D sequence of observations.
        laws: list of ``Gaussian``, updated in place.
        max_iterations: hard cap on EM rounds.
        tolerance: stop when no mean moves more than this.
        update_sigma: keep sigmas fixed unless True.

    Returns:
        mixing proportions, one per law.
    """
    x = np.asarray(values, dtype=np.float64)
    k = len(laws)
    pi = np.full(k, 1.0 / k) if k else np.zeros(0)
    if k == 0 or len(x) == 0:
        return pi

    for iteration in range(max_iterations):
        # E step, in log space: far values would underflow with sigma = 1
        log_p = np.stack([
            np.log(max(pi[j], 1e-300)) + norm.logpdf(x, law.mean, law.sigma)
            for j, law in enumerate(laws)
        ])
        resp = np.exp(log_p - logsumexp(log_p, axis=0))

        # M step
        moved = 0.0
        for j, law in enumerate(laws):
            weight = resp[j].sum()
            if weight <= 0:
                continue  # empty component, keep its mean
            mean = float((resp[j] * x).sum() / weight)
            moved = max(moved, abs(mean - law.mean))
            law.mean = mean
            if update_sigma:
                var = float((resp[j] * (x - mean) ** 2).sum() / weight)
                law.sigma = max(np.sqrt(var), 1e-3)
        pi = resp.sum(axis=1) / len(x)

        if moved < tolerance:
            logger.debug("em converged after %d iterations", iteration + 1)
            break

    return pi
