import numpy as np
import pytest

AIRLIGHT = np.array([0.85, 0.85, 0.85], dtype=np.float32)
SCENE = np.array([0.8, 0.3, 0.2], dtype=np.float32)


def make_hazy_gradient(size=64, scattering=1.5):
    """Reddish scene behind light-grey haze that thickens towards the bottom-right.

    Returns the hazy image and the normalised distance used to generate it.
    """
    y, x = np.mgrid[0:size, 0:size].astype(np.float32)
    distance = (x + y) / (2 * (size - 1))
    t = np.exp(-scattering * distance)[..., None]
    hazy = SCENE * t + AIRLIGHT * (1 - t)
    return hazy.astype(np.float32), distance


@pytest.fixture
def hazy_gradient():
    return make_hazy_gradient()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
