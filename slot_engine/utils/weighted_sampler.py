import bisect
import secrets
from decimal import Decimal

from slot_engine.exceptions import ConfigurationException


class WeightedSampler:
    """
    Draws symbols from a weight table through a cumulative-weight lookup.

    The cumulative sequence is built once; every draw takes a uniform value in
    [0, total_weight) and returns the first symbol whose cumulative weight is
    greater than it. Binary search gives the same answer a linear scan would.

    Args:
        weights (list[tuple[int, number]]): (symbol_id, weight) pairs, in table order.
        rng: Random source exposing ``random()``. Defaults to ``secrets.SystemRandom()``,
             which is safe to share between threads.

    Raises:
        ConfigurationException: If the table is empty or a weight is not positive.
    """

    def __init__(self, weights, rng=None):
        if not weights:
            raise ConfigurationException("Weight table must contain at least one symbol.")

        self.symbols = []
        self.cumulative_weights = []
        running_total = Decimal('0')
        for symbol_id, weight in weights:
            weight = Decimal(str(weight))
            if weight <= 0:
                raise ConfigurationException(
                    f"Weight for symbol {symbol_id} must be positive, got {weight}.",
                    details={'symbol_id': symbol_id}
                )
            running_total += weight
            self.symbols.append(symbol_id)
            self.cumulative_weights.append(running_total)

        self.total_weight = running_total
        self._float_cumulative = [float(w) for w in self.cumulative_weights]
        self._float_total = float(self.total_weight)
        self.rng = rng if rng is not None else secrets.SystemRandom()

    def __len__(self):
        return len(self.symbols)

    def index_for_roll(self, roll):
        """Index of the first cumulative weight strictly greater than ``roll``."""
        idx = bisect.bisect_right(self._float_cumulative, roll)
        # A roll equal to the total only happens through float rounding.
        return min(idx, len(self.symbols) - 1)

    def draw(self):
        roll = self.rng.random() * self._float_total
        return self.symbols[self.index_for_roll(roll)]

    def draw_many(self, count):
        return [self.draw() for _ in range(count)]

    def probability_of(self, symbol_id):
        """Probability of drawing ``symbol_id``, as a Decimal."""
        if symbol_id not in self.symbols:
            return Decimal('0')
        idx = self.symbols.index(symbol_id)
        previous = self.cumulative_weights[idx - 1] if idx > 0 else Decimal('0')
        return (self.cumulative_weights[idx] - previous) / self.total_weight
