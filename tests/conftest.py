# pylint: disable=redefined-outer-name
import numpy as np
import pytest

from .helpers import create_model, create_multidimensional_model, create_outlier_model


@pytest.fixture(scope="module")
def models():
    """Fixture containing 2 mock DataTree instances for testing."""
    # blank line to keep black and pydocstyle happy

    class Models:
        model_1 = create_model(seed=10)
        model_2 = create_model(seed=11, shift=0.5, transpose=True)

    return Models()


@pytest.fixture(scope="module")
def normal_model():
    """Fixture for a well specified normal model."""
    return create_model(seed=10)


@pytest.fixture(scope="module")
def multidim_model():
    """Fixture for a model with two observation dimensions."""
    return create_multidimensional_model(seed=10)


@pytest.fixture(scope="module")
def outlier_model():
    """Fixture for a model with one unreliable observation."""
    return create_outlier_model(seed=10)


@pytest.fixture
def rng():
    """Seeded random number generator."""
    return np.random.default_rng(31)
