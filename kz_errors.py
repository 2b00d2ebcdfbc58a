""" error types raised by the KZ2 stereo matcher

"""


class KZError(Exception):
    """ base class of all matcher errors """


class ConfigurationError(KZError, ValueError):
    """ invalid parameters, disparity range or configuration file """


class DimensionMismatch(KZError, ValueError):
    """ left/right images incompatible with each other or with the disparity range """


class SolverInconsistency(KZError, RuntimeError):
    """ the min-cut result breaks an invariant of the matcher

    Never caused by bad input: it means the graph handed to the solver was built wrong.
    """
