import unittest
from decimal import Decimal
from unittest.mock import MagicMock

from slot_engine.exceptions import ConfigurationException
from slot_engine.utils.game_catalog import SymbolCatalog
from slot_engine.utils.spin_handler import (
    generate_spin_grid,
    count_symbol,
    get_symbol_payout,
    get_step_payout,
    _calculate_payline_wins_for_grid,
    _calculate_scatter_wins_for_grid,
    calculate_win,
    check_bonus_trigger,
)

WILD = 9
SCATTER = 7
BONUS = 8
PLACEHOLDER = 6


def make_game_config(paylines, min_symbols_to_match=3, trigger_count=3):
    return {
        "game": {
            "name": "Helper Slot",
            "short_name": "helper",
            "layout": {"rows": 3, "columns": 3, "paylines": paylines},
            "symbols": [
                {"id": 1, "name": "Cherry", "icon": "C", "weight": 10, "value_multipliers": {"2": 2, "3": 10}},
                {"id": 2, "name": "Lemon", "icon": "L", "weight": 10, "value_multipliers": {"3": 4}},
                {"id": 3, "name": "Plum", "icon": "P", "weight": 10},
                {"id": WILD, "name": "Wild", "icon": "W", "weight": 2, "is_wild": True,
                 "value_multipliers": {"3": 50}},
                {"id": SCATTER, "name": "Scatter", "icon": "S", "weight": 2, "is_scatter": True,
                 "scatter_payouts": {"2": 1, "3": 5}},
                {"id": BONUS, "name": "MiniGame", "icon": "B", "weight": 1, "is_bonus": True},
                {"id": PLACEHOLDER, "name": "Locked", "icon": "X", "is_placeholder": True},
            ],
            "min_symbols_to_match": min_symbols_to_match,
            "bonus_features": {
                "mini_game": {"trigger_count": trigger_count, "boost_chance": 0.3,
                              "payout_tiers": {"3": 1, "5": 4, "9": 20}}
            },
        }
    }


TOP_ROW = {"id": "top_row", "coords": [[0, 0], [0, 1], [0, 2]]}
MIDDLE_ROW = {"id": "middle_row", "coords": [[1, 0], [1, 1], [1, 2]]}
DIAGONAL = {"id": "diagonal_down", "coords": [[0, 0], [1, 1], [2, 2]]}


class TestSpinHandlerHelpers(unittest.TestCase):

    def setUp(self):
        self.catalog = SymbolCatalog(make_game_config([TOP_ROW]))
        self.multi_line_catalog = SymbolCatalog(make_game_config([TOP_ROW, MIDDLE_ROW, DIAGONAL]))

    def payline_wins(self, grid, catalog=None):
        catalog = catalog or self.catalog
        return _calculate_payline_wins_for_grid(
            grid, catalog.paylines, catalog.paytables, catalog.wild_symbol_id,
            {catalog.scatter_symbol_id, catalog.bonus_symbol_id}, catalog.min_symbols_to_match
        )

    # --- generate_spin_grid ---
    def test_generate_grid_has_requested_shape(self):
        sampler = MagicMock()
        sampler.draw_many.side_effect = lambda n: [1] * n
        grid = generate_spin_grid(4, 5, sampler)
        self.assertEqual(len(grid), 4)
        self.assertTrue(all(len(row) == 5 for row in grid))
        self.assertEqual(sampler.draw_many.call_count, 4)

    def test_generate_grid_rejects_non_positive_dimensions(self):
        with self.assertRaises(ConfigurationException):
            generate_spin_grid(0, 3, MagicMock())
        with self.assertRaises(ConfigurationException):
            generate_spin_grid(3, -1, MagicMock())

    def test_generate_grid_uses_catalog_sampler(self):
        grid = generate_spin_grid(self.catalog.rows, self.catalog.columns, self.catalog.sampler)
        drawable = {s_id for s_id, _ in self.catalog.weight_table}
        for row in grid:
            for s_id in row:
                self.assertIn(s_id, drawable)
                self.assertNotEqual(s_id, PLACEHOLDER)

    # --- lookups ---
    def test_get_symbol_payout_is_exact(self):
        self.assertEqual(get_symbol_payout(1, 3, self.catalog.paytables), Decimal('10'))
        self.assertEqual(get_symbol_payout(2, 2, self.catalog.paytables), Decimal('0'))
        self.assertEqual(get_symbol_payout(42, 3, self.catalog.paytables), Decimal('0'))

    def test_get_step_payout_uses_greatest_key_not_above_count(self):
        table = {3: Decimal('1'), 5: Decimal('4'), 9: Decimal('20')}
        self.assertEqual(get_step_payout(table, 2), Decimal('0'))
        self.assertEqual(get_step_payout(table, 3), Decimal('1'))
        self.assertEqual(get_step_payout(table, 8), Decimal('4'))
        self.assertEqual(get_step_payout(table, 15), Decimal('20'))
        self.assertEqual(get_step_payout({}, 15), Decimal('0'))

    def test_count_symbol(self):
        grid = [[1, 8, 1], [8, 2, 3], [3, 3, 8]]
        self.assertEqual(count_symbol(grid, 8), 3)
        self.assertEqual(count_symbol(grid, None), 0)

    # --- paylines ---
    def test_three_matching_symbols_on_payline(self):
        grid = [[1, 1, 1], [2, 3, 2], [3, 2, 3]]
        win_info = calculate_win(grid, self.catalog)
        self.assertEqual(win_info["total_multiplier"], Decimal('10'))
        self.assertEqual(len(win_info["winning_lines"]), 1)
        line = win_info["winning_lines"][0]
        self.assertEqual(line["line_id"], "top_row")
        self.assertEqual(line["symbol_id"], 1)
        self.assertEqual(line["count"], 3)
        self.assertEqual(line["positions"], [[0, 0], [0, 1], [0, 2]])
        self.assertIn("Line top_row: 3x C Cherry pays 10x", win_info["breakdown_text"])

    def test_wild_substitutes_anywhere_in_streak(self):
        for grid in ([[WILD, 1, 1], [2, 3, 2], [3, 2, 3]],
                     [[1, WILD, 1], [2, 3, 2], [3, 2, 3]],
                     [[WILD, WILD, 1], [2, 3, 2], [3, 2, 3]]):
            result = self.payline_wins(grid)
            self.assertEqual(result["multiplier"], Decimal('10'), grid)
            self.assertEqual(result["winning_lines"][0]["symbol_id"], 1)

    def test_all_wild_line_pays_wild_paytable(self):
        result = self.payline_wins([[WILD, WILD, WILD], [2, 3, 2], [3, 2, 3]])
        self.assertEqual(result["multiplier"], Decimal('50'))
        self.assertEqual(result["winning_lines"][0]["symbol_id"], WILD)

    def test_streak_stops_at_first_mismatch(self):
        result = self.payline_wins([[1, 2, 1], [2, 3, 2], [3, 2, 3]])
        self.assertEqual(result["multiplier"], Decimal('0'))
        self.assertEqual(result["winning_lines"], [])

    def test_min_symbols_to_match_is_respected(self):
        grid = [[1, 1, 2], [2, 3, 2], [3, 2, 3]]
        self.assertEqual(self.payline_wins(grid)["multiplier"], Decimal('0'))

        two_match_catalog = SymbolCatalog(make_game_config([TOP_ROW], min_symbols_to_match=2))
        result = self.payline_wins(grid, two_match_catalog)
        self.assertEqual(result["multiplier"], Decimal('2'))
        self.assertEqual(result["winning_lines"][0]["count"], 2)

    def test_scatter_or_bonus_candidate_never_pays_on_line(self):
        for special in (SCATTER, BONUS):
            grid = [[WILD, special, special], [2, 3, 2], [3, 2, 3]]
            self.assertEqual(self.payline_wins(grid)["winning_lines"], [])

    def test_total_is_sum_of_winning_lines(self):
        grid = [[1, 1, 1], [2, WILD, 2], [3, 2, 1]]
        win_info = calculate_win(grid, self.multi_line_catalog)
        line_ids = sorted(line["line_id"] for line in win_info["winning_lines"])
        self.assertEqual(line_ids, ["diagonal_down", "middle_row", "top_row"])
        self.assertEqual(win_info["total_multiplier"], Decimal('24'))
        self.assertEqual(
            win_info["total_multiplier"],
            sum(line["multiplier"] for line in win_info["winning_lines"])
        )
        self.assertEqual(len(win_info["winning_symbol_coords"]), 7)

    def test_no_win_breakdown(self):
        win_info = calculate_win([[1, 2, 3], [2, 3, 1], [3, 1, 2]], self.catalog)
        self.assertEqual(win_info["total_multiplier"], Decimal('0'))
        self.assertEqual(win_info["breakdown_text"], "No win")

    # --- scatter ---
    def test_scatter_uses_step_lookup(self):
        grid = [[SCATTER, 2, SCATTER], [2, SCATTER, 3], [SCATTER, 3, 2]]
        result = _calculate_scatter_wins_for_grid(grid, SCATTER, self.catalog.scatter_payouts)
        self.assertEqual(result["multiplier"], Decimal('5'))
        self.assertEqual(result["winning_lines"][0]["count"], 4)
        self.assertEqual(result["winning_lines"][0]["type"], "scatter")

    def test_single_scatter_pays_nothing(self):
        grid = [[SCATTER, 2, 3], [2, 3, 2], [3, 2, 3]]
        result = _calculate_scatter_wins_for_grid(grid, SCATTER, self.catalog.scatter_payouts)
        self.assertEqual(result, {"multiplier": Decimal('0'), "winning_lines": []})

    def test_scatter_adds_to_line_wins(self):
        grid = [[1, 1, 1], [SCATTER, 3, SCATTER], [3, 2, 3]]
        win_info = calculate_win(grid, self.catalog)
        self.assertEqual(win_info["total_multiplier"], Decimal('11'))
        self.assertIn("Scatter: 2x S Scatter pays 1x", win_info["breakdown_text"])

    # --- bonus trigger ---
    def test_bonus_trigger_threshold(self):
        below = [[BONUS, 2, BONUS], [2, 3, 2], [3, 2, 3]]
        at = [[BONUS, 2, BONUS], [2, BONUS, 2], [3, 2, 3]]
        self.assertFalse(check_bonus_trigger(below, self.catalog)["triggered"])
        result = check_bonus_trigger(at, self.catalog)
        self.assertTrue(result["triggered"])
        self.assertEqual(result["type"], "mini_game")
        self.assertEqual(result["symbol_count"], 3)
        self.assertEqual(result["trigger_count"], 3)

    def test_bonus_trigger_without_mini_game(self):
        config = make_game_config([TOP_ROW])
        del config["game"]["bonus_features"]
        catalog = SymbolCatalog(config)
        grid = [[BONUS] * 3] * 3
        self.assertFalse(check_bonus_trigger(grid, catalog)["triggered"])


if __name__ == '__main__':
    unittest.main()
