import argparse
import logging
import secrets
from decimal import Decimal

import numpy as np

from slot_engine.exceptions import AppException
from slot_engine.services.jackpot_service import ProgressiveJackpotManager
from slot_engine.services.slot_service import SlotMachineService
from slot_engine.services.wallet import InMemoryWallet
from slot_engine.utils.bonus_round import BonusRoundEngine, STATUS_COMPLETE
from slot_engine.utils.game_catalog import GameCatalog

logger = logging.getLogger(__name__)

SIM_GROUP_ID = 'simulation'
SIM_PLAYER_ID = 'tester'

WIN_BUCKETS = [
    ('0x', Decimal('0'), Decimal('0')),
    ('0-1x', Decimal('0'), Decimal('1')),
    ('1-2x', Decimal('1'), Decimal('2')),
    ('2-5x', Decimal('2'), Decimal('5')),
    ('5-10x', Decimal('5'), Decimal('10')),
    ('10-50x', Decimal('10'), Decimal('50')),
    ('50x+', Decimal('50'), None),
]


def bucket_for(multiplier):
    if multiplier == 0:
        return '0x'
    for label, low, high in WIN_BUCKETS[1:]:
        if multiplier > low and (high is None or multiplier <= high):
            return label
    return '50x+'


class SlotTester:
    """
    Simulates play through the real slot service to measure RTP, hit and bonus
    frequency, and volatility. Bonus rounds are played to completion; jackpot
    wins are reported separately from base and bonus RTP.
    """

    def __init__(self, slot_short_name, num_spins, bet_amount, rng=None, config_dir=None):
        self.slot_short_name = slot_short_name
        self.num_spins = num_spins
        self.bet_amount = Decimal(str(bet_amount))
        self.rng = rng
        self.config_dir = config_dir
        self.catalog = None
        self.service = None
        self.wallet = None

        # Statistics to be collected
        self.total_bet = Decimal('0')
        self.total_win = Decimal('0')
        self.total_base_win = Decimal('0')
        self.total_bonus_win = Decimal('0')
        self.total_jackpot_win = Decimal('0')
        self.hit_count = 0
        self.bonus_triggers = 0
        self.jackpot_hits = {}
        self.bonus_data = []
        self.wins_by_multiplier = {label: 0 for label, _, _ in WIN_BUCKETS}
        self.spin_returns = []
        self.rtp_over_time = []

        # Derived statistics
        self.overall_rtp = Decimal('0')
        self.hit_frequency = 0.0
        self.bonus_frequency = 0.0
        self.avg_bonus_win = Decimal('0')
        self.base_game_rtp_contribution = Decimal('0')
        self.bonus_rtp_contribution = Decimal('0')
        self.jackpot_rtp_contribution = Decimal('0')
        self.volatility_index = None

    def load_configuration(self):
        """Builds an isolated service for the slot; returns False if the slot cannot be loaded."""
        try:
            game_catalog = GameCatalog(self.config_dir, short_names=[self.slot_short_name], rng=self.rng)
        except AppException as e:
            logger.error(f"Failed to load configuration for {self.slot_short_name}: {e}")
            return False

        self.catalog = game_catalog.get(self.slot_short_name)
        self.wallet = InMemoryWallet()
        self.service = SlotMachineService(
            game_catalog,
            self.wallet,
            ProgressiveJackpotManager(rng=self.rng),
            BonusRoundEngine(secrets.token_urlsafe(32), rng=self.rng),
        )
        logger.info(f"Loaded {self.catalog!r} for simulation")
        return True

    def run_simulation(self):
        if self.service is None and not self.load_configuration():
            return False
        logger.info(f"Simulating {self.num_spins} spins of {self.slot_short_name} at bet {self.bet_amount}")
        checkpoint = max(1, self.num_spins // 20)
        for spin_number in range(1, self.num_spins + 1):
            self._simulate_one_spin()
            if spin_number % checkpoint == 0:
                self.rtp_over_time.append((spin_number, self.total_win / self.total_bet))
        self.calculate_derived_statistics()
        return True

    def _play_bonus_round(self, token):
        """Reveals columns until the round completes; returns the completed bonus view."""
        while True:
            step = self.service.reveal_bonus_column(SIM_GROUP_ID, SIM_PLAYER_ID, token)
            if not step['success']:
                raise RuntimeError(f"Bonus round failed during simulation: {step['message']}")
            bonus = step['bonus']
            if bonus['status'] == STATUS_COMPLETE:
                return bonus
            token = bonus['token']

    def _simulate_one_spin(self):
        result = self.service.spin(SIM_GROUP_ID, SIM_PLAYER_ID, self.slot_short_name, self.bet_amount)
        if not result['success']:
            raise RuntimeError(f"Spin failed during simulation: {result['message']}")

        spin_data = {
            'base_win': result['payout'],
            'bonus_win': Decimal('0'),
            'jackpot_win': Decimal('0'),
            'jackpot_tier': None,
            'bonus': None,
        }
        if result['bonus'] is not None:
            bonus = self._play_bonus_round(result['bonus']['token'])
            spin_data['bonus_win'] = bonus['payout']
            spin_data['bonus'] = bonus
        if result['jackpot'] is not None:
            spin_data['jackpot_win'] = result['jackpot']['amount']
            spin_data['jackpot_tier'] = result['jackpot']['tier']
        self._collect_spin_statistics(spin_data)
        return spin_data

    def _collect_spin_statistics(self, spin_data):
        self.total_bet += self.bet_amount
        game_win = spin_data['base_win'] + spin_data['bonus_win']
        self.total_win += game_win
        self.total_base_win += spin_data['base_win']
        self.total_bonus_win += spin_data['bonus_win']
        self.total_jackpot_win += spin_data['jackpot_win']

        if game_win > 0:
            self.hit_count += 1
        if spin_data['bonus'] is not None:
            self.bonus_triggers += 1
            self.bonus_data.append({
                'win': spin_data['bonus_win'],
                'bonus_symbol_count': spin_data['bonus']['bonus_symbol_count'],
            })
        if spin_data['jackpot_tier']:
            self.jackpot_hits[spin_data['jackpot_tier']] = self.jackpot_hits.get(spin_data['jackpot_tier'], 0) + 1

        multiplier = game_win / self.bet_amount
        self.wins_by_multiplier[bucket_for(multiplier)] += 1
        self.spin_returns.append(float(multiplier))

    def calculate_derived_statistics(self):
        spins = len(self.spin_returns)
        if spins == 0 or self.total_bet == 0:
            return
        self.overall_rtp = self.total_win / self.total_bet
        self.hit_frequency = self.hit_count / spins
        self.bonus_frequency = self.bonus_triggers / spins
        self.avg_bonus_win = self.total_bonus_win / self.bonus_triggers if self.bonus_triggers else Decimal('0')
        self.base_game_rtp_contribution = self.total_base_win / self.total_bet
        self.bonus_rtp_contribution = self.total_bonus_win / self.total_bet
        self.jackpot_rtp_contribution = self.total_jackpot_win / self.total_bet
        self.volatility_index = float(np.std(np.array(self.spin_returns, dtype=float)))

    def summary(self):
        return {
            'slot': self.slot_short_name,
            'spins': len(self.spin_returns),
            'bet': self.bet_amount,
            'total_bet': self.total_bet,
            'total_win': self.total_win,
            'rtp': self.overall_rtp,
            'base_rtp': self.base_game_rtp_contribution,
            'bonus_rtp': self.bonus_rtp_contribution,
            'jackpot_rtp': self.jackpot_rtp_contribution,
            'hit_frequency': self.hit_frequency,
            'bonus_frequency': self.bonus_frequency,
            'avg_bonus_win': self.avg_bonus_win,
            'jackpot_hits': dict(self.jackpot_hits),
            'wins_by_multiplier': dict(self.wins_by_multiplier),
            'volatility_index': self.volatility_index,
        }

    def print_summary_statistics(self):
        stats = self.summary()
        print(f"\n--- Simulation Summary: {stats['slot']} ---")
        print(f"Spins: {stats['spins']}  Bet: {stats['bet']}  Total bet: {stats['total_bet']}")
        print(f"Total win (base + bonus): {stats['total_win']}")
        print(f"RTP: {stats['rtp'] * 100:.4f}%  (base {stats['base_rtp'] * 100:.4f}%, bonus {stats['bonus_rtp'] * 100:.4f}%)")
        print(f"Jackpot contribution: {stats['jackpot_rtp'] * 100:.4f}%  hits: {stats['jackpot_hits'] or 'none'}")
        print(f"Hit frequency: {stats['hit_frequency'] * 100:.2f}%  Bonus frequency: {stats['bonus_frequency'] * 100:.3f}%")
        print(f"Average bonus win: {stats['avg_bonus_win']:.4f}")
        if stats['volatility_index'] is not None:
            print(f"Volatility index (std dev of win/bet): {stats['volatility_index']:.4f}")
        print("Win distribution:")
        for label, count in stats['wins_by_multiplier'].items():
            print(f"  {label:>7}: {count}")


def main():
    parser = argparse.ArgumentParser(description="Slot Machine Tester - Simulates slot play to analyze RTP and other metrics.")
    parser.add_argument("slot_short_name", help="Short name of the game variant (e.g. advanced5x5)")
    parser.add_argument("--spins", type=int, default=100000, help="Number of spins to simulate")
    parser.add_argument("--bet", type=str, default="1", help="Bet per spin")
    parser.add_argument("--config-dir", default=None, help="Directory holding <short_name>/gameConfig.json")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    tester = SlotTester(args.slot_short_name, args.spins, args.bet, config_dir=args.config_dir)
    if not tester.run_simulation():
        raise SystemExit(1)
    tester.print_summary_statistics()


if __name__ == "__main__":
    main()
