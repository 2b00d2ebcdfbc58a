""" Kolmogorov-Zabih stereo matching by graph cuts

Implementation of Kolmogorov et al. 2014 Image Processing On Line paper:
http://www.ipol.im/pub/art/2014/97/

The matcher keeps a left-to-right and a right-to-left disparity map and
lowers the energy with alpha-expansion moves. Each move is one min-cut over
two binary variables per left pixel: one for its current assignment and one
for the assignment to disparity alpha.
"""

import enum
import logging

import numpy as np

from kz_energy import Energy, VAR_ALPHA, VAR_ABSENT, is_var
from kz_errors import ConfigurationError, DimensionMismatch, SolverInconsistency
from kz_images import StereoImages
from kz_parameters import DataCost, Parameters
from kz_penalties import make_penalties
import kz_io

logger = logging.getLogger(__name__)

OCCLUDED = 1 << 30  # special value of disparity meaning occlusion
NEIGHBORS = ((0, 1), (1, 0))  # each 4-connected pair is visited once


class MatchStatus(enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    CONVERGED = 'converged'
    ITERATION_LIMIT_REACHED = 'iteration_limit_reached'


class Match:
    """ main class for the Kolmogorov-Zabih algorithm

    if l is a pixel of the left image and r a pixel of the right image:
        r == (l[0], l[1] + x_left[l])
        l == (r[0], r[1] + x_right[r])

    Args:
        left_image (np.array): left image, gray (H, W) or color (H, W, 3)
        right_image (np.array): right image, same height and type
        color (bool): compare colors instead of gray levels; inferred from left_image if None
        seed (int): seed of the random label order
        check_energy (bool): recompute the energy from scratch after every accepted move
    """

    def __init__(self, left_image, right_image, color=None, seed=None, check_energy=False):
        self.images = StereoImages(left_image, right_image, color=color)
        self.color = self.images.color

        if seed is None:
            seed = int(np.random.SeedSequence().entropy % (1 << 32))
        self.seed = seed
        self.check_energy = check_energy

        self.params = None
        self.penalties = None
        self.disp_min = None
        self.disp_max = None

        self._x_left = np.full(self.images.left_shape, OCCLUDED, dtype=np.int64)
        self._x_right = np.full(self.images.right_shape, OCCLUDED, dtype=np.int64)
        # to track the graph variables of each pixel
        self.vars0 = np.full(self.images.left_shape, VAR_ABSENT, dtype=np.int64)
        self.varsA = np.full(self.images.left_shape, VAR_ABSENT, dtype=np.int64)

        self._energy = 0
        self.status = MatchStatus.IDLE
        self.sweeps = 0

    # ------------------------------------------------------------------
    # configuration

    def set_disp_range(self, disp_base, disp_max):
        """ set the disparity search range [disp_base, disp_max] and reset the maps """
        disp_base, disp_max = int(disp_base), int(disp_max)
        if disp_base > disp_max:
            raise ConfigurationError(
                f'Invalid disparity range [{disp_base}, {disp_max}]: minimum exceeds maximum')

        left_width = self.images.left_shape[1]
        right_width = self.images.right_shape[1]
        # some left column must reach the right image for some disparity
        if disp_base > right_width - 1 or disp_max < -(left_width - 1):
            raise DimensionMismatch(
                f'No left pixel has a match in the right image for disparities '
                f'[{disp_base}, {disp_max}] (widths {left_width} and {right_width})')

        self.disp_min, self.disp_max = disp_base, disp_max
        self.reset()
        logger.info("disparity range [%d, %d]", disp_base, disp_max)

    def set_parameters(self, params):
        if not isinstance(params, Parameters):
            raise ConfigurationError('params must be a Parameters instance')
        params.validate()
        self.params = params
        self.penalties = make_penalties(self.images, params)
        if self.disp_min is not None:
            self._energy = self.compute_energy()
        logger.info("parameters: %s", params)

    def reset(self):
        """ make every pixel occluded """
        self._x_left.fill(OCCLUDED)
        self._x_right.fill(OCCLUDED)
        self._energy = 0
        self.status = MatchStatus.IDLE
        self.sweeps = 0

    def get_k(self, data_cost=None):
        """ heuristic value of the occlusion penalty K

        For each left pixel away from the border (every disparity of the range
        lands in the right image), take the k-th smallest data penalty over the
        range, k being about a quarter of the number of labels and at least 3.
        K is the average over those pixels.

        Returns:
            float: K before scaling by the denominator
        """
        self._check_range()
        if data_cost is None:
            data_cost = self.params.data_cost if self.params is not None else DataCost.L2
        penalties = make_penalties(self.images, Parameters(data_cost=data_cost))

        labels = self.disp_max - self.disp_min + 1
        k = min(max(3, (labels + 2) // 4), labels)

        first = max(0, -self.disp_min)
        last = min(self.images.left_shape[1], self.images.right_shape[1] - self.disp_max)
        if first >= last:
            raise ConfigurationError('Not enough samples to estimate K: disparity range too wide')

        costs = np.empty((labels, self.images.left_shape[0], last - first), dtype=np.float64)
        for i, d in enumerate(range(self.disp_min, self.disp_max + 1)):
            cost, _ = penalties.data_cost_map(d)
            costs[i] = cost[:, first:last]
        K = float(np.mean(np.partition(costs, k - 1, axis=0)[k - 1]))
        if K == 0:
            raise ConfigurationError(
                'K is 0: the images match exactly over the disparity range, set K explicitly')
        return K

    # ------------------------------------------------------------------
    # state accessors

    @property
    def x_left(self):
        view = self._x_left.view()
        view.setflags(write=False)
        return view

    @property
    def x_right(self):
        view = self._x_right.view()
        view.setflags(write=False)
        return view

    @property
    def energy(self):
        return self._energy

    def _check_range(self):
        if self.disp_min is None:
            raise ConfigurationError('set_disp_range must be called first')

    def _check_ready(self):
        self._check_range()
        if self.params is None:
            raise ConfigurationError('set_parameters must be called first')

    # ------------------------------------------------------------------
    # energy

    def data_occlusion_penalty(self, l, r):
        return self.penalties.data_occlusion_penalty(l, r)

    def smoothness_penalty(self, p, np_, d):
        return self.penalties.smoothness_penalty(p, np_, d)

    def compute_energy(self):
        """ energy of the current configuration, recomputed from scratch

        Returns:
            int: energy
        """
        self._check_ready()
        im = self.images
        x_left = self._x_left
        energy = 0
        for p in np.ndindex(*im.left_shape):
            d = int(x_left[p])
            if d != OCCLUDED:
                energy += self.data_occlusion_penalty(p, (p[0], p[1] + d))
            for dy, dx in NEIGHBORS:
                np_ = (p[0] + dy, p[1] + dx)
                if not im.in_left(np_):
                    continue
                nd = int(x_left[np_])
                if d == nd:
                    continue
                if d != OCCLUDED and im.in_right((np_[0], np_[1] + d)):
                    energy += self.smoothness_penalty(p, np_, d)
                if nd != OCCLUDED and im.in_right((p[0], p[1] + nd)):
                    energy += self.smoothness_penalty(p, np_, nd)
        return energy

    # ------------------------------------------------------------------
    # graph construction

    def build_nodes(self, e, p, a):
        """ variables for the current assignment of p and for (p, p + a) """
        d = int(self._x_left[p])
        q = (p[0], p[1] + d)
        if d == a:  # active assignment (p, p + a) stays in alpha-expansion
            self.vars0[p] = VAR_ALPHA
            self.varsA[p] = VAR_ALPHA
            e.add_constant(self.data_occlusion_penalty(p, q))
            return

        # value 0: the current assignment remains active
        if d != OCCLUDED:
            self.vars0[p] = e.add_variable(self.data_occlusion_penalty(p, q), 0)
        else:
            self.vars0[p] = VAR_ABSENT

        # value 1: the assignment (p, p + a) becomes active
        q = (p[0], p[1] + a)
        if self.images.in_right(q):
            self.varsA[p] = e.add_variable(0, self.data_occlusion_penalty(p, q))
        else:
            self.varsA[p] = VAR_ABSENT

    def build_smoothness(self, e, p, np_, a):
        """ smoothness terms between neighbors p and np_ """
        d, nd = int(self._x_left[p]), int(self._x_left[np_])
        o1, o2 = int(self.vars0[p]), int(self.vars0[np_])
        a1, a2 = int(self.varsA[p]), int(self.varsA[np_])

        # disparity a
        if a1 != VAR_ABSENT and a2 != VAR_ABSENT:
            delta = self.smoothness_penalty(p, np_, a)
            if a1 != VAR_ALPHA:  # (p, p + a) is variable
                if a2 != VAR_ALPHA:  # penalize different activity
                    e.add_term2(a1, a2, 0, delta, delta, 0)
                else:  # penalize (p, p + a) inactive
                    e.add_term1(a1, delta, 0)
            elif a2 != VAR_ALPHA:  # (np, np + a) is variable
                e.add_term1(a2, delta, 0)

        # current disparity d == nd != a
        if d == nd and is_var(o1) and is_var(o2):
            delta = self.smoothness_penalty(p, np_, d)
            e.add_term2(o1, o2, 0, delta, delta, 0)

        # current disparities d != nd: penalize an active assignment whose neighbor is not
        if d != nd:
            if is_var(o1) and self.images.in_right((np_[0], np_[1] + d)):
                e.add_term1(o1, self.smoothness_penalty(p, np_, d), 0)
            if is_var(o2) and self.images.in_right((p[0], p[1] + nd)):
                e.add_term1(o2, self.smoothness_penalty(p, np_, nd), 0)

    def build_uniqueness_lr(self, e, p):
        """ (p, p + d) and (p, p + a) cannot be both active """
        o = int(self.vars0[p])
        if is_var(o):
            a = int(self.varsA[p])
            if a != VAR_ABSENT:
                e.forbid01(o, a)

    def build_uniqueness_rl(self, e, p, a):
        """ (p, p + d) and (q, q + a) with q + a == p + d cannot be both active """
        o = int(self.vars0[p])
        if is_var(o):
            q = (p[0], p[1] + int(self._x_left[p]) - a)
            if self.images.in_left(q):
                var_a = int(self.varsA[q])
                if var_a == VAR_ALPHA:
                    raise SolverInconsistency(f'right pixel matched twice at {p}')
                if var_a != VAR_ABSENT:
                    e.forbid01(o, var_a)

    def update_disparity(self, e, a):
        """ decode the cut into the disparity maps """
        x_left, x_right = self._x_left, self._x_right
        for p in zip(*np.nonzero(self.vars0 >= 0)):
            if e.get_var(int(self.vars0[p])) == 1:
                d = int(x_left[p])
                x_right[p[0], p[1] + d] = OCCLUDED
                x_left[p] = OCCLUDED

        for p in zip(*np.nonzero(self.varsA >= 0)):
            if e.get_var(int(self.varsA[p])) == 1:
                q = (p[0], p[1] + a)
                if x_left[p] != OCCLUDED or x_right[q] != OCCLUDED:
                    raise SolverInconsistency(
                        f'uniqueness violated by the cut at left {p} / right {q}')
                x_left[p] = a
                x_right[q] = -a

    # ------------------------------------------------------------------
    # optimization

    def expansion_move(self, a):
        """ compute the minimum a-expansion configuration

        The result is committed only if it strictly lowers the energy.

        Args:
            a (int): disparity label

        Returns:
            bool: True if the move was accepted
        """
        self._check_ready()
        if not self.disp_min <= a <= self.disp_max:
            raise ConfigurationError(f'label {a} outside [{self.disp_min}, {self.disp_max}]')

        im = self.images
        height, width = im.left_shape
        # each pixel has two nodes and up to 12 edges
        e = Energy(2 * height * width, 12 * height * width)

        pixels = list(np.ndindex(height, width))
        for p in pixels:
            self.build_nodes(e, p, a)
        for p in pixels:
            for dy, dx in NEIGHBORS:
                np_ = (p[0] + dy, p[1] + dx)
                if im.in_left(np_):
                    self.build_smoothness(e, p, np_, a)
        for p in pixels:
            self.build_uniqueness_lr(e, p)
            self.build_uniqueness_rl(e, p, a)

        old_energy = self._energy
        new_energy = e.minimize()
        if new_energy > old_energy:
            raise SolverInconsistency(
                f'min-cut energy {new_energy} above current energy {old_energy} for label {a}')
        if new_energy == old_energy:
            logger.debug("label %d: no improvement (E=%d)", a, old_energy)
            return False

        self.update_disparity(e, a)
        self._energy = new_energy
        logger.debug("label %d: E=%d -> %d", a, old_energy, new_energy)
        if self.check_energy:
            self.verify()
        return True

    def verify(self):
        """ check the tracked energy and the left/right consistency

        Raises:
            SolverInconsistency: if an invariant does not hold
        """
        recomputed = self.compute_energy()
        if recomputed != self._energy:
            raise SolverInconsistency(
                f'tracked energy {self._energy} differs from recomputed energy {recomputed}')

        active = self._x_left != OCCLUDED
        if np.any((self._x_left[active] < self.disp_min) | (self._x_left[active] > self.disp_max)):
            raise SolverInconsistency('disparity outside the search range')
        rows, cols = np.nonzero(active)
        matched = cols + self._x_left[rows, cols]
        if np.any(self._x_right[rows, matched] != -self._x_left[rows, cols]):
            raise SolverInconsistency('left and right disparity maps are inconsistent')
        if np.count_nonzero(self._x_right != OCCLUDED) != rows.size:
            raise SolverInconsistency('right pixel without left match')

    def label_order(self, sweep):
        """ labels (offsets from disp_min) in the order visited by a sweep

        Args:
            sweep (int): index of the sweep, seeds the permutation when randomized

        Returns:
            np.array: permutation of range(disp_max - disp_min + 1)
        """
        labels = self.disp_max - self.disp_min + 1
        if self.params.randomize_every_iteration:
            rng = np.random.default_rng([self.seed, sweep])
            return rng.permutation(labels)
        return np.arange(labels)

    def sweep(self, index, done=None):
        """ one pass of expansion moves over all labels

        Args:
            index (int): sweep index
            done (np.array): labels known not to improve the current state, skipped;
                updated in place

        Returns:
            int: number of accepted moves
        """
        self._check_ready()
        labels = self.disp_max - self.disp_min + 1
        if done is None:
            done = np.zeros(labels, dtype=bool)
        accepted = 0
        for label in self.label_order(index):
            if done[label]:
                continue
            if self.expansion_move(self.disp_min + int(label)):
                accepted += 1
                done[:] = False
            done[label] = True
        return accepted

    def run(self):
        """ alpha-expansion until no label improves or iter_max sweeps

        Returns:
            MatchStatus: CONVERGED or ITERATION_LIMIT_REACHED
        """
        self._check_ready()
        labels = self.disp_max - self.disp_min + 1
        done = np.zeros(labels, dtype=bool)

        self.status = MatchStatus.RUNNING
        self._energy = self.compute_energy()
        logger.info("E=%d", self._energy)

        self.sweeps = 0
        while self.sweeps < self.params.iter_max and not done.all():
            accepted = self.sweep(self.sweeps, done)
            self.sweeps += 1
            logger.info("sweep %d: %d moves accepted, E=%d", self.sweeps, accepted, self._energy)

        if done.all():
            self.status = MatchStatus.CONVERGED
        else:
            self.status = MatchStatus.ITERATION_LIMIT_REACHED
        logger.info("%s after %d sweeps, E=%d", self.status.value, self.sweeps, self._energy)
        return self.status

    def kz2(self):
        """ precompute the sub-pixel ranges and run to completion """
        self._check_ready()
        self.images.init_sub_pixel()
        return self.run()

    # ------------------------------------------------------------------
    # output

    def disparity_map(self):
        """ x_left as float32, NaN where occluded """
        disp = self._x_left.astype(np.float32)
        disp[self._x_left == OCCLUDED] = np.nan
        return disp

    def occlusion_mask(self):
        return self._x_left == OCCLUDED

    def scaled_x_left(self, flag=True):
        """ 8-bit BGR rendering of x_left

        Args:
            flag (bool): draw occluded pixels in cyan instead of black

        Returns:
            np.array: (H, W, 3) uint8 image
        """
        self._check_range()
        return kz_io.scaled_disparity_image(self._x_left, self.disp_min, self.disp_max,
                                            self.occlusion_mask(), flag)

    def save_x_left(self, file_name):
        """ save the disparity map as float TIFF """
        kz_io.save_disparity_float(file_name, self.disparity_map())

    def save_scaled_x_left(self, file_name, flag=True):
        """ save the 8-bit rendering, e.g. as PPM """
        kz_io.save_image(file_name, self.scaled_x_left(flag))
