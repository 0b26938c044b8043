"""Default parameters for the colour-attenuation-prior dehazer.

Edit the constants below to change the defaults used by the dehazer, the
``dehaze`` command and the batch evaluator.
"""

# Window radius shared by the min filter and the guided filter
RADIUS = 9

# Scattering coefficient of the atmosphere
BETA = 1.0

# Guided filter regularisation
GUIDED_EPS = 1e-5

# Fraction of farthest pixels considered for the atmospheric light
TOP_FRACTION = 0.001

# Transmission bounds
TRANSMISSION_MIN = 0.1
TRANSMISSION_MAX = 0.9

# Linear model depth = theta0 + theta1 * luminance + theta2 * saturation
THETA = (0.121779, 0.959710, -0.780245)

# Luminance weights for R, G, B
LUMINANCE_WEIGHTS = (0.2126, 0.7152, 0.0722)

VALID_EXTS = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff"}
