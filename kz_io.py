""" image loading and disparity map writers """

import logging
from pathlib import Path

import cv2
import numpy as np

logger = logging.getLogger(__name__)

OCCLUSION_BGR = (255, 255, 0)  # cyan


def load_image(path, color=False):
    """ read an image with OpenCV

    Args:
        path (str): image file
        color (bool): keep 3 channels (BGR) instead of converting to gray

    Returns:
        np.array: uint8 image
    """
    flags = cv2.IMREAD_COLOR if color else cv2.IMREAD_GRAYSCALE
    image = cv2.imread(str(path), flags)
    if image is None:
        raise FileNotFoundError(f"Cannot read {path}")
    return image


def save_image(path, image):
    path = Path(path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise OSError(f"Cannot write {path}")
    logger.info("wrote %s", path)


def save_disparity_float(path, disparity):
    """ save a float disparity map losslessly (TIFF or PFM, chosen by extension) """
    save_image(path, np.asarray(disparity, dtype=np.float32))


def scaled_disparity_image(disparity, disp_min, disp_max, occluded, flag=True):
    """ convert disparity map to a displayable 8-bit BGR image

    disp_min is drawn white and disp_max dark gray (64).

    Args:
        disparity (np.array): integer disparity map
        disp_min, disp_max (int): disparity range
        occluded (np.array): bool mask of occluded pixels
        flag (bool): occluded pixels in cyan if True, black otherwise

    Returns:
        np.array: (H, W, 3) uint8 image
    """
    disparity = np.asarray(disparity, dtype=np.float64)
    if disp_max > disp_min:
        gray = 255 - (255 - 64) * (disparity - disp_min) / (disp_max - disp_min)
    else:
        gray = np.full(disparity.shape, 255.0)
    gray = np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    gray[occluded] = 0

    # gray scale just duplicate for 3 channels
    image = cv2.merge((gray, gray, gray))
    if flag:
        image[occluded] = OCCLUSION_BGR
    return image
