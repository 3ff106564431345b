import random
import unittest
from decimal import Decimal
from unittest.mock import patch

from slot_engine.utils.slot_tester import SlotTester, bucket_for


class TestSlotTester(unittest.TestCase):

    def test_unknown_slot_fails_to_load(self):
        tester = SlotTester(slot_short_name="no_such_slot", num_spins=10, bet_amount=1)
        self.assertFalse(tester.load_configuration())
        self.assertFalse(tester.run_simulation())

    def test_simulation_collects_statistics(self):
        tester = SlotTester("slots3x3", num_spins=400, bet_amount="2", rng=random.Random(2024))
        self.assertTrue(tester.run_simulation())

        stats = tester.summary()
        self.assertEqual(stats['spins'], 400)
        self.assertEqual(stats['total_bet'], Decimal('800'))
        self.assertEqual(sum(stats['wins_by_multiplier'].values()), 400)
        self.assertEqual(stats['total_win'], tester.total_base_win + tester.total_bonus_win)
        self.assertEqual(stats['rtp'], stats['total_win'] / stats['total_bet'])
        self.assertTrue(0 <= stats['hit_frequency'] <= 1)
        self.assertIsNotNone(stats['volatility_index'])
        self.assertEqual(len(tester.rtp_over_time), 20)

    def test_bonus_rounds_are_played_to_completion(self):
        tester = SlotTester("advanced5x5", num_spins=300, bet_amount=1, rng=random.Random(99))
        self.assertTrue(tester.run_simulation())
        self.assertEqual(len(tester.bonus_data), tester.bonus_triggers)
        for bonus in tester.bonus_data:
            self.assertGreaterEqual(bonus['bonus_symbol_count'], 0)
            self.assertGreaterEqual(bonus['win'], 0)
        self.assertEqual(tester.total_bonus_win, sum((b['win'] for b in tester.bonus_data), Decimal('0')))

    def test_jackpot_wins_are_reported_separately(self):
        tester = SlotTester("classic", num_spins=5, bet_amount=1, rng=random.Random(1))
        tester.load_configuration()
        with patch.object(tester.service.jackpot_manager, 'rng') as jackpot_rng:
            jackpot_rng.random.return_value = 0.0
            tester.run_simulation()
        self.assertEqual(tester.jackpot_hits, {'mega': 5})
        self.assertEqual(tester.total_jackpot_win, Decimal('5000'))
        self.assertEqual(tester.total_win, tester.total_base_win)

    def test_bucket_for(self):
        self.assertEqual(bucket_for(Decimal('0')), '0x')
        self.assertEqual(bucket_for(Decimal('0.5')), '0-1x')
        self.assertEqual(bucket_for(Decimal('1')), '0-1x')
        self.assertEqual(bucket_for(Decimal('3')), '2-5x')
        self.assertEqual(bucket_for(Decimal('500')), '50x+')


if __name__ == '__main__':
    unittest.main()
