""" stereo image pair wrapper

Holds the left/right images (grayscale or color) and the per-pixel intensity
range used by the sampling-insensitive data term.
"""

import logging

import numpy as np
import cv2

from kz_errors import DimensionMismatch

logger = logging.getLogger(__name__)


def i_maxmin(im):
    """ get I max and min on the one-pixel-large-neighborhood

    The range covers the pixel itself and the half-way interpolations with its
    4 neighbors (Birchfield & Tomasi). Border pixels use the pixel value for the
    missing neighbors. Works for gray (H, W) and color (H, W, 3) images.

    Args:
        im (np.array): image

    Returns:
        im_max (np.array), im_min (np.array)
    """
    im = im.astype(np.float64)

    left = np.copy(im)
    left[:, 1:] += im[:, :-1]
    left[:, 1:] /= 2

    right = np.copy(im)
    right[:, :-1] += im[:, 1:]
    right[:, :-1] /= 2

    up = np.copy(im)
    up[1:, :] += im[:-1, :]
    up[1:, :] /= 2

    down = np.copy(im)
    down[:-1, :] += im[1:, :]
    down[:-1, :] /= 2

    stack = np.array([im, left, right, up, down])
    return np.max(stack, axis=0), np.min(stack, axis=0)


def _as_mode(image, color):
    """ convert an image to gray (H, W) or color (H, W, 3) """
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] != 3):
        raise DimensionMismatch(f'Unsupported image shape {image.shape}')

    if color and image.ndim == 2:
        image = cv2.cvtColor(image.astype(np.float32), cv2.COLOR_GRAY2BGR)
    elif not color and image.ndim == 3:
        image = cv2.cvtColor(image.astype(np.float32), cv2.COLOR_BGR2GRAY)
    return image.astype(np.float64)


class StereoImages:
    """ left/right images of a rectified pair, read-only after construction

    Pixels are (row, col) tuples; a disparity d maps left (y, x) to right (y, x + d).
    """

    def __init__(self, left_image, right_image, color=None):
        if color is None:
            color = np.asarray(left_image).ndim == 3 and np.asarray(left_image).shape[2] == 3
        self.color = bool(color)

        self.left = _as_mode(left_image, self.color)
        self.right = _as_mode(right_image, self.color)

        if self.left.shape[0] != self.right.shape[0]:
            raise DimensionMismatch(
                f'Left and right images must have the same height '
                f'({self.left.shape[0]} != {self.right.shape[0]})')
        if self.left.shape[0] == 0 or self.left.shape[1] == 0 or self.right.shape[1] == 0:
            raise DimensionMismatch('Images must not be empty')

        self.left.setflags(write=False)
        self.right.setflags(write=False)

        self._ranges = None
        logger.debug("stereo pair: left %s, right %s, color=%s",
                     self.left.shape, self.right.shape, self.color)

    @property
    def left_shape(self):
        return self.left.shape[:2]

    @property
    def right_shape(self):
        return self.right.shape[:2]

    def init_sub_pixel(self):
        """ precompute the neighbor intensity ranges of both images """
        if self._ranges is None:
            left_max, left_min = i_maxmin(self.left)
            right_max, right_min = i_maxmin(self.right)
            for im in (left_min, left_max, right_min, right_max):
                im.setflags(write=False)
            self._ranges = (left_min, left_max, right_min, right_max)
        return self._ranges

    @property
    def left_min(self):
        return self.init_sub_pixel()[0]

    @property
    def left_max(self):
        return self.init_sub_pixel()[1]

    @property
    def right_min(self):
        return self.init_sub_pixel()[2]

    @property
    def right_max(self):
        return self.init_sub_pixel()[3]

    def in_left(self, p):
        return 0 <= p[0] < self.left.shape[0] and 0 <= p[1] < self.left.shape[1]

    def in_right(self, q):
        return 0 <= q[0] < self.right.shape[0] and 0 <= q[1] < self.right.shape[1]
