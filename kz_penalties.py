""" energy model: data, occlusion and smoothness penalties

Two variants share one interface, chosen once from the image type:
GrayPenalties compares scalars, ColorPenalties compares the 3 channels.
"""

import numpy as np

from kz_parameters import DataCost

CUTOFF = 30  # truncation of the per-channel data distance


def interval_distance(value, low, high):
    """ distance from value to the interval [low, high], 0 inside """
    return np.maximum(0, np.maximum(low - value, value - high))


class Penalties:
    """ penalties of the KZ2 energy for a given pair of images

    Subclasses define how channel costs and intensity differences are combined.
    """

    def __init__(self, images, params):
        self.images = images
        self.params = params

    # combine per-channel values; overridden for color
    def _reduce_cost(self, cost):
        return cost

    def _reduce_diff(self, diff):
        return diff

    def _bt_cost(self, il, il_min, il_max, ir, ir_min, ir_max):
        """ Birchfield & Tomasi's dissimilarity, trimmed and symmetric

        Works on scalars and arrays; the result is an integer cost per channel,
        squared for the L2 norm.
        """
        dis_l2r = interval_distance(il, ir_min, ir_max)
        dis_r2l = interval_distance(ir, il_min, il_max)
        d = np.floor(np.minimum(np.minimum(dis_l2r, dis_r2l), CUTOFF)).astype(np.int64)
        if self.params.data_cost == DataCost.L2:
            d = d * d
        return d

    def data_penalty(self, l, r):
        """ cost of matching left pixel l with right pixel r

        Args:
            l (tuple): pixel (row, col) in the left image
            r (tuple): pixel (row, col) in the right image

        Returns:
            int: non-negative cost
        """
        im = self.images
        cost = self._bt_cost(im.left[l], im.left_min[l], im.left_max[l],
                             im.right[r], im.right_min[r], im.right_max[r])
        return int(self._reduce_cost(cost))

    def data_occlusion_penalty(self, l, r):
        """ data term of an active assignment (l, r), relative to leaving l occluded

        An inactive assignment costs K, so activating (l, r) changes the energy by
        denominator * D(l, r) - K.
        """
        return self.params.denominator * self.data_penalty(l, r) - self.params.K

    def smoothness_penalty(self, p, np_, d):
        """ cost of a discontinuity between neighbors p and np_ at disparity d

        Args:
            p, np_ (tuple): 4-connected neighbors in the left image
            d (int): disparity; p + d and np_ + d must lie in the right image

        Returns:
            int: lambda2 across an intensity edge, lambda1 otherwise
        """
        im = self.images
        q, nq = (p[0], p[1] + d), (np_[0], np_[1] + d)
        dl = self._reduce_diff(np.abs(im.left[p] - im.left[np_]))
        dr = self._reduce_diff(np.abs(im.right[q] - im.right[nq]))
        if dl < self.params.i_threshold2 and dr < self.params.i_threshold2:
            return self.params.lambda1
        return self.params.lambda2

    def data_cost_map(self, d):
        """ data penalty of every left pixel at disparity d

        Args:
            d (int): disparity

        Returns:
            cost (np.array): (H, W) int costs, 0 where invalid
            valid (np.array): (H, W) bool, True where x + d falls in the right image
        """
        im = self.images
        height, width = im.left_shape
        right_width = im.right_shape[1]
        cols = np.arange(width)
        valid_cols = (cols + d >= 0) & (cols + d < right_width)
        cost = np.zeros((height, width), dtype=np.int64)
        valid = np.zeros((height, width), dtype=bool)
        valid[:, valid_cols] = True
        if not valid_cols.any():
            return cost, valid

        lc = cols[valid_cols]
        rc = lc + d
        channel_cost = self._bt_cost(im.left[:, lc], im.left_min[:, lc], im.left_max[:, lc],
                                     im.right[:, rc], im.right_min[:, rc], im.right_max[:, rc])
        cost[:, lc] = self._reduce_cost(channel_cost)
        return cost, valid


class GrayPenalties(Penalties):
    """ penalties over scalar intensities """


class ColorPenalties(Penalties):
    """ penalties over 3-channel intensities

    Data costs are summed over the channels, intensity differences use the largest channel.
    """

    def _reduce_cost(self, cost):
        return np.sum(cost, axis=-1)

    def _reduce_diff(self, diff):
        return np.max(diff)


def make_penalties(images, params):
    if images.color:
        return ColorPenalties(images, params)
    return GrayPenalties(images, params)
