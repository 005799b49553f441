# pylint: disable=redefined-outer-name
import pytest

from .helpers import create_loo_data, create_normal_model, make_wrapper_classes


@pytest.fixture(scope="session")
def wrapper_classes():
    """SamplingWrapper subclasses for tests."""
    return make_wrapper_classes()


@pytest.fixture(scope="session")
def normal_idata():
    """Fixture for a normal model DataTree with 10 observations."""
    return create_normal_model()


@pytest.fixture
def normal_wrapper(wrapper_classes, normal_idata):
    return wrapper_classes[0](normal_idata)


@pytest.fixture
def zero_wrapper(wrapper_classes, normal_idata):
    return wrapper_classes[1](normal_idata)


@pytest.fixture
def loo_data(normal_idata):
    """Approximate loo estimate with high Pareto k at positions 2 and 6."""
    return create_loo_data(normal_idata)
