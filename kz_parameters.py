""" parameters of the KZ2 energy and their automatic selection

All costs handed to the graph-cut solver are integers: real valued weights
(K, lambda1, lambda2) are multiplied by a common denominator and rounded,
the data term is multiplied by the same denominator.
"""

import enum
import logging
from dataclasses import dataclass

from kz_errors import ConfigurationError

logger = logging.getLogger(__name__)


class DataCost(enum.Enum):
    L1 = 'L1'
    L2 = 'L2'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ConfigurationError(f'Unknown data cost {value!r}, expected L1 or L2') from None


@dataclass(frozen=True)
class Parameters:
    """ immutable parameters of the algorithm

    Attributes:
        data_cost (DataCost): norm of the data term
        denominator (int): the data term is multiplied by it; equivalent to using
            lambda1/denominator, lambda2/denominator, K/denominator
        i_threshold2 (int): intensity level difference for an 'edge'
        lambda1 (int): smoothness cost not across an edge
        lambda2 (int): smoothness cost across an edge (must be <= lambda1)
        K (int): penalty for an inactive assignment (occlusion)
        iter_max (int): maximum number of sweeps
        randomize_every_iteration (bool): new random label order at each sweep
    """
    data_cost: DataCost = DataCost.L2
    denominator: int = 1
    i_threshold2: int = 8
    lambda1: int = 0
    lambda2: int = 0
    K: int = 0
    iter_max: int = 4
    randomize_every_iteration: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'data_cost', DataCost.parse(self.data_cost))
        for name in ('denominator', 'i_threshold2', 'lambda1', 'lambda2', 'K', 'iter_max'):
            value = getattr(self, name)
            try:
                integral = not isinstance(value, bool) and int(value) == value
            except (TypeError, ValueError):
                integral = False
            if not integral:
                raise ConfigurationError(f'{name} must be an integer, got {value!r}')
            object.__setattr__(self, name, int(value))
        self.validate()

    def validate(self):
        if self.denominator <= 0:
            raise ConfigurationError('denominator must be positive')
        if self.i_threshold2 < 0:
            raise ConfigurationError('i_threshold2 must be non-negative')
        if self.K < 0:
            raise ConfigurationError('K must be non-negative')
        if self.lambda1 < 0 or self.lambda2 < 0:
            raise ConfigurationError('smoothness weights must be non-negative')
        if self.lambda2 > self.lambda1:
            raise ConfigurationError(
                f'lambda2 ({self.lambda2}) must not exceed lambda1 ({self.lambda1})')
        if self.iter_max < 1:
            raise ConfigurationError('iter_max must be at least 1')


def best_denominator(K, lambda1, lambda2, max_denominator=16):
    """ find the denominator minimizing the rounding error of the weights

    Args:
        K, lambda1, lambda2 (float): real valued weights

    Returns:
        int: denominator in [1, max_denominator]
    """
    best = None
    for i in range(1, max_denominator + 1):
        err = 0.0
        for value in (K, lambda1, lambda2):
            if value > 0:
                err += abs(round(i * value) / (i * value) - 1)
        # keep the smallest denominator on ties
        if best is None or err < best[0] - 1e-9:
            best = (err, i)
    return best[1]


def fix_parameters(match, data_cost=DataCost.L2, K=None, lambda_=None, lambda1=None,
                   lambda2=None, denominator=None, i_threshold2=8, iter_max=4,
                   randomize_every_iteration=False):
    """ complete the missing weights and convert them to integers

    K defaults to match.get_k(), lambda to K/5, lambda1 to 3*lambda and lambda2 to lambda.
    Unless given, the denominator is chosen in 1..16 to minimize rounding errors.

    Args:
        match (Match): matcher whose images and disparity range drive the K estimate

    Returns:
        Parameters
    """
    data_cost = DataCost.parse(data_cost)
    for name, value in (('K', K), ('lambda', lambda_), ('lambda1', lambda1), ('lambda2', lambda2)):
        if value is not None and value < 0:
            raise ConfigurationError(f'{name} must be non-negative')

    if K is None:
        K = match.get_k(data_cost)
        logger.info("K automatically set to %g", K)
    if lambda_ is None:
        lambda_ = K / 5
    if lambda1 is None:
        lambda1 = 3 * lambda_
    if lambda2 is None:
        lambda2 = lambda_
    if denominator is None:
        denominator = best_denominator(K, lambda1, lambda2)

    params = Parameters(
        data_cost=data_cost,
        denominator=denominator,
        i_threshold2=i_threshold2,
        K=int(round(denominator * K)),
        lambda1=int(round(denominator * lambda1)),
        lambda2=int(round(denominator * lambda2)),
        iter_max=iter_max,
        randomize_every_iteration=randomize_every_iteration,
    )
    logger.info("parameters: K=%d/%d lambda1=%d/%d lambda2=%d/%d",
                params.K, denominator, params.lambda1, denominator, params.lambda2, denominator)
    return params
