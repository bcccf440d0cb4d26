import numpy as np
import pytest

from exceptions import InvalidConfiguration, InvalidThreshold, MatchEnvError
from match_config import MAX_NUM_NEIGHBORS, MatchEnvConfig, validate_threshold_ratio


def test_defaults():
    config = MatchEnvConfig(rmax=1.5)
    assert config.k == MAX_NUM_NEIGHBORS == 12
    assert config.n_workers == 1
    assert config.rmax_sq == pytest.approx(2.25)


def test_threshold_is_scaled_by_rmax_squared():
    assert MatchEnvConfig(rmax=2.0, k=6).threshold_sq(0.5) == pytest.approx(2.0)


def test_numpy_integer_k_accepted():
    assert MatchEnvConfig(rmax=1.0, k=np.int64(4)).k == 4


@pytest.mark.parametrize("kwargs", [
    {'rmax': 0.0},
    {'rmax': -1.0},
    {'rmax': float('inf')},
    {'rmax': 'far'},
    {'rmax': 1.0, 'k': 0},
    {'rmax': 1.0, 'k': 13},
    {'rmax': 1.0, 'k': 2.5},
    {'rmax': 1.0, 'k': True},
    {'rmax': 1.0, 'n_workers': 0},
])
def test_invalid_configuration(kwargs):
    with pytest.raises(InvalidConfiguration):
        MatchEnvConfig(**kwargs)


@pytest.mark.parametrize("threshold", [-0.1, 2.0, 5.0, float('nan'), None])
def test_invalid_threshold(threshold):
    with pytest.raises(InvalidThreshold):
        validate_threshold_ratio(threshold)


def test_errors_are_value_errors():
    assert issubclass(InvalidThreshold, MatchEnvError)
    with pytest.raises(ValueError):
        MatchEnvConfig(rmax=-1.0)


def test_threshold_bounds():
    assert validate_threshold_ratio(0) == 0.0
    assert validate_threshold_ratio(1.99) == pytest.approx(1.99)
