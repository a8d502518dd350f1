"""
Fixed numerical tolerances and alignment symbols.

These values are part of the observable behaviour of the package and are
deliberately not configurable per call.
"""

# Tolerance for imaginary parts of quantities that must be real, and for
# deciding whether two eigenvalues are equal.
EPSILON = 1e-6

# Alignment characters
GAP_CHARS = "-."
GAP_CHAR = "-"
WILDCARD_CHAR = "*"

# Indel parameters used when a rate model file does not specify them
DEFAULT_INS_RATE = 0.01
DEFAULT_DEL_RATE = 0.01
DEFAULT_INS_EXT = 0.66
DEFAULT_DEL_EXT = 0.66
