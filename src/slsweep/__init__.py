"""
slsweep - Monte Carlo sweeps over super-learner library combinations.

Enumerate every component subset, re-estimate the ATE under a fixed seed
plan, checkpoint each combination, stitch the results.
"""

from slsweep.driver import SweepOutcome, run_compute
from slsweep.stitch import stitch

__version__ = "0.1.0"
__all__ = ["SweepOutcome", "run_compute", "stitch", "__version__"]
