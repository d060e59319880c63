"""
Run settings shared by the engine and the dashboard.
"""

import logging

# Numerical tolerance for row sums of transition matrices and cohort vectors
TOLERANCE = 1e-9

# Within-cycle correction used when the caller does not pick one.
# "simpson-composite" accepts the 75-cycle base case (odd horizon).
DEFAULT_WCC_METHOD = "simpson-composite"

# Probabilistic sensitivity analysis
DEFAULT_N_SIM = 1000        # Monte Carlo draws
DEFAULT_SEED = 2026         # base seed, sample i uses DEFAULT_SEED + i
DEFAULT_N_JOBS = 1          # 1 = sequential, -1 = all cores (joblib)

# Willingness-to-pay grid (lower, upper, step) in $/QALY
DEFAULT_WTP = (0, 120000, 2000)

LOG_FORMAT = "%(levelname)s: %(message)s"


def configure_logging(level=logging.INFO):
    """Route engine log records to stderr with a compact format."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
