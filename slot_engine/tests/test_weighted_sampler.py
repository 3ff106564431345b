import random
from collections import Counter
from decimal import Decimal

import pytest

from slot_engine.exceptions import ConfigurationException
from slot_engine.utils.weighted_sampler import WeightedSampler


class StubRandom:
    """Returns queued values from random(), in order."""

    def __init__(self, values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


WEIGHTS = [(1, 10), (2, 5), (3, 5)]


def test_cumulative_weights_strictly_increase_and_end_at_total():
    sampler = WeightedSampler([(1, 20), (2, 14), (3, '5.5'), (4, 15)])
    cumulative = sampler.cumulative_weights
    assert all(a < b for a, b in zip(cumulative, cumulative[1:]))
    assert cumulative[-1] == Decimal('54.5')
    assert sampler.total_weight == Decimal('54.5')
    assert len(sampler) == 4


def test_draw_returns_first_symbol_whose_cumulative_weight_exceeds_roll():
    # total 20: rolls 0, 9.8, 10, 15 and 19.98
    sampler = WeightedSampler(WEIGHTS, rng=StubRandom([0.0, 0.49, 0.5, 0.75, 0.999]))
    assert [sampler.draw() for _ in range(5)] == [1, 1, 2, 3, 3]


def test_roll_at_total_is_clamped_to_last_symbol():
    sampler = WeightedSampler(WEIGHTS)
    assert sampler.index_for_roll(20.0) == 2


def test_draw_many_returns_requested_count_of_known_symbols():
    sampler = WeightedSampler(WEIGHTS, rng=random.Random(7))
    drawn = sampler.draw_many(50)
    assert len(drawn) == 50
    assert set(drawn) <= {1, 2, 3}


def test_seeded_draws_follow_weights():
    sampler = WeightedSampler(WEIGHTS, rng=random.Random(1234))
    counts = Counter(sampler.draw_many(20000))
    # Symbol 1 carries half the weight
    assert 0.46 < counts[1] / 20000 < 0.54
    assert 0.21 < counts[2] / 20000 < 0.29


def test_probability_of():
    sampler = WeightedSampler(WEIGHTS)
    assert sampler.probability_of(1) == Decimal('0.5')
    assert sampler.probability_of(3) == Decimal('0.25')
    assert sampler.probability_of(99) == Decimal('0')


def test_empty_table_is_rejected():
    with pytest.raises(ConfigurationException):
        WeightedSampler([])


@pytest.mark.parametrize('bad_weight', [0, -1, '0.0'])
def test_non_positive_weight_is_rejected(bad_weight):
    with pytest.raises(ConfigurationException) as excinfo:
        WeightedSampler([(1, 10), (2, bad_weight)])
    assert excinfo.value.details == {'symbol_id': 2}
