"""
Command line program: disparity map of a rectified stereo pair by KZ2 graph cuts

usage: kz2 [options] left right [disp_min disp_max] [output.tif]

Saves the disparity map as float TIFF (NaN for occluded pixels) and optionally
a scaled 8-bit rendering (-o), occluded pixels in cyan with --occlusion-color.
"""

import argparse
import logging
import sys

import cv2
import numpy as np

from kz_config import ConfigManager
from kz_errors import KZError, ConfigurationError
from kz_io import load_image
from kz_match import Match, OCCLUDED
from kz_parameters import fix_parameters

logger = logging.getLogger(__name__)


def build_parser():
    ap = argparse.ArgumentParser(
        prog='kz2', description="Stereo disparity by Kolmogorov-Zabih graph cuts")
    ap.add_argument("left", help="left image")
    ap.add_argument("right", help="right image")
    ap.add_argument("disp_min", type=int, nargs='?', help="minimum disparity")
    ap.add_argument("disp_max", type=int, nargs='?', help="maximum disparity")
    ap.add_argument("output", nargs='?', help="float disparity map (TIFF)")
    ap.add_argument("--config", "-c", help="YAML configuration file")
    ap.add_argument("--color", action="store_true", help="match colors instead of gray levels")
    ap.add_argument("--data-cost", choices=["L1", "L2"], help="norm of the data term")
    ap.add_argument("-k", type=float, dest="K", help="occlusion penalty")
    ap.add_argument("--lambda", type=float, dest="lambda_", help="smoothness weight")
    ap.add_argument("--lambda1", type=float, help="smoothness weight not across edges")
    ap.add_argument("--lambda2", type=float, help="smoothness weight across edges")
    ap.add_argument("--threshold", "-t", type=int, dest="i_threshold2",
                    help="intensity difference for an edge")
    ap.add_argument("--denominator", "-d", type=int, help="denominator of the weights")
    ap.add_argument("--iter-max", "-i", type=int, help="maximum number of sweeps")
    ap.add_argument("--random", "-r", action="store_true", help="random label order at each sweep")
    ap.add_argument("--seed", type=int, help="seed of the random label order")
    ap.add_argument("--scaled", "-o", help="scaled 8-bit disparity map (PPM, PNG...)")
    ap.add_argument("--occlusion-color", action="store_true",
                    help="occluded pixels in cyan in the scaled map")
    ap.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return ap


def apply_arguments(config, args):
    """ command line options override the configuration file """
    overrides = {
        'kz2.data_cost': args.data_cost,
        'kz2.K': args.K,
        'kz2.lambda': args.lambda_,
        'kz2.lambda1': args.lambda1,
        'kz2.lambda2': args.lambda2,
        'kz2.i_threshold2': args.i_threshold2,
        'kz2.denominator': args.denominator,
        'kz2.iter_max': args.iter_max,
        'kz2.seed': args.seed,
        'disparity.min': args.disp_min,
        'disparity.max': args.disp_max,
        'output.float_map': args.output,
        'output.scaled_map': args.scaled,
    }
    values = {key: value for key, value in overrides.items() if value is not None}
    if args.random:
        values['kz2.randomize_every_iteration'] = True
    if args.occlusion_color:
        values['output.occlusion_color'] = True
    if args.verbose:
        values['logging.level'] = 'DEBUG'
    config.update(values)


def compute_disparity(left_image, right_image, config, color=False):
    """ run KZ2 on an image pair with the given configuration

    Returns:
        Match: the matcher after convergence
    """
    disp_min, disp_max = config.get_disparity_range()
    if disp_min is None or disp_max is None:
        raise ConfigurationError("disparity range not set (disp_min disp_max or disparity.min/max)")

    kz2 = config.get_kz2_params()
    match = Match(left_image, right_image, color=color, seed=kz2['seed'],
                  check_energy=kz2['check_energy'])
    match.set_disp_range(disp_min, disp_max)
    params = fix_parameters(
        match,
        data_cost=kz2['data_cost'],
        K=kz2['K'],
        lambda_=kz2['lambda'],
        lambda1=kz2['lambda1'],
        lambda2=kz2['lambda2'],
        denominator=kz2['denominator'],
        i_threshold2=kz2['i_threshold2'],
        iter_max=kz2['iter_max'],
        randomize_every_iteration=kz2['randomize_every_iteration'],
    )
    match.set_parameters(params)

    # time the graph cut algorithm
    start = cv2.getTickCount()
    status = match.kz2()
    elapsed = (cv2.getTickCount() - start) / cv2.getTickFrequency()
    logger.info("%s in %.2f s, E=%d", status.value, elapsed, match.energy)

    occlusion_mask = match.x_left == OCCLUDED
    logger.info("percentage of occlusion: %.2f%%", np.mean(occlusion_mask) * 100)
    return match


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        config = ConfigManager(args.config)
        apply_arguments(config, args)
    except (KZError, FileNotFoundError) as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("%s", e)
        return 1

    logging.basicConfig(
        level=getattr(logging, str(config.get('logging.level', 'INFO')).upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        left_image = load_image(args.left, color=args.color)
        right_image = load_image(args.right, color=args.color)
        match = compute_disparity(left_image, right_image, config, color=args.color)
    except (KZError, FileNotFoundError) as e:
        logger.error("%s", e)
        return 1

    output = config.get_output_params()
    if output['float_map']:
        match.save_x_left(output['float_map'])
    if output['scaled_map']:
        match.save_scaled_x_left(output['scaled_map'], output['occlusion_color'])
    return 0


if __name__ == "__main__":
    sys.exit(main())
