import logging
from decimal import Decimal

from slot_engine.exceptions import ConfigurationException

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def generate_spin_grid(rows, columns, sampler):
    """
    Generates the symbol grid for a spin.

    Every cell is drawn independently from the sampler, so repeated symbols within
    one spin are expected.

    Args:
        rows (int): Number of grid rows.
        columns (int): Number of grid columns (reels).
        sampler (WeightedSampler): Weighted symbol source for the game variant.

    Returns:
        list[list[int]]: ``rows`` lists of ``columns`` symbol ids.
    """
    if not isinstance(rows, int) or not isinstance(columns, int) or rows <= 0 or columns <= 0:
        raise ConfigurationException(f"Grid dimensions must be positive, got {rows}x{columns}.")
    return [sampler.draw_many(columns) for _ in range(rows)]


def count_symbol(grid, symbol_id):
    if symbol_id is None:
        return 0
    return sum(1 for row in grid for s_id in row if s_id == symbol_id)


def get_symbol_payout(symbol_id, count, paytables):
    """
    Exact paytable lookup for a line win: ``paytables[symbol_id][count]`` or zero.
    """
    return paytables.get(symbol_id, {}).get(count, ZERO)


def get_step_payout(count_table, count):
    """
    Step-function lookup: the multiplier of the greatest key not above ``count``,
    zero below the smallest key. Used for scatter pays and bonus tiers.
    """
    best_key = None
    for key in count_table:
        if key <= count and (best_key is None or key > best_key):
            best_key = key
    return count_table[best_key] if best_key is not None else ZERO


# --- Helper Functions for calculate_win ---

def _calculate_payline_wins_for_grid(grid, paylines, paytables, wild_symbol_id, skip_symbol_ids,
                                     min_symbols_to_match):
    """
    Calculates wins based on configured paylines.

    For each line the candidate is the first cell, or the first non-wild cell when
    the line opens on wilds (an all-wild line keeps wild). Lines whose candidate is
    in ``skip_symbol_ids`` (scatter, bonus) never pay. The streak runs left to right
    while cells equal the candidate or are wild.

    Returns:
        dict: ``multiplier`` (Decimal sum) and ``winning_lines`` entries.
    """
    payline_multiplier = ZERO
    payline_winning_lines_data = []

    for payline_config in paylines:
        payline_id = payline_config["id"]
        positions = payline_config["coords"]
        line_symbols_on_grid = [grid[r][c] for r, c in positions]

        match_symbol_id = line_symbols_on_grid[0]
        if match_symbol_id == wild_symbol_id:
            match_symbol_id = next(
                (s_id for s_id in line_symbols_on_grid if s_id != wild_symbol_id),
                wild_symbol_id
            )

        if match_symbol_id in skip_symbol_ids:
            continue

        consecutive_count = 0
        for s_id in line_symbols_on_grid:
            if s_id == match_symbol_id or s_id == wild_symbol_id:
                consecutive_count += 1
            else:
                break

        if consecutive_count < min_symbols_to_match:
            continue

        payout_multiplier = get_symbol_payout(match_symbol_id, consecutive_count, paytables)
        if payout_multiplier > 0:
            payline_multiplier += payout_multiplier
            payline_winning_lines_data.append({
                "line_id": payline_id, "symbol_id": match_symbol_id,
                "count": consecutive_count,
                "positions": [list(pos) for pos in positions[:consecutive_count]],
                "multiplier": payout_multiplier, "type": "payline"
            })

    return {
        "multiplier": payline_multiplier,
        "winning_lines": payline_winning_lines_data,
    }


def _calculate_scatter_wins_for_grid(grid, scatter_symbol_id, scatter_payouts):
    """
    Calculates wins from scatter symbols anywhere on the grid, independent of paylines.
    """
    if scatter_symbol_id is None or not scatter_payouts:
        return {"multiplier": ZERO, "winning_lines": []}

    scatter_positions_on_grid = [
        [r_idx, c_idx]
        for r_idx, row in enumerate(grid)
        for c_idx, symbol_in_cell in enumerate(row)
        if symbol_in_cell == scatter_symbol_id
    ]
    scatter_count_on_grid = len(scatter_positions_on_grid)
    scatter_payout_multiplier = get_step_payout(scatter_payouts, scatter_count_on_grid)

    if scatter_payout_multiplier <= 0:
        return {"multiplier": ZERO, "winning_lines": []}

    return {
        "multiplier": scatter_payout_multiplier,
        "winning_lines": [{
            "line_id": "scatter", "symbol_id": scatter_symbol_id,
            "count": scatter_count_on_grid, "positions": scatter_positions_on_grid,
            "multiplier": scatter_payout_multiplier, "type": "scatter"
        }],
    }


def format_breakdown(winning_lines, catalog):
    if not winning_lines:
        return "No win"
    parts = []
    for line in winning_lines:
        icon = catalog.icon_for(line["symbol_id"])
        name = catalog.symbol_name(line["symbol_id"])
        if line["type"] == "scatter":
            parts.append(f"Scatter: {line['count']}x {icon} {name} pays {line['multiplier']}x")
        else:
            parts.append(f"Line {line['line_id']}: {line['count']}x {icon} {name} pays {line['multiplier']}x")
    return "\n".join(parts)


def calculate_win(grid, catalog):
    """
    Calculates the total multiplier and identifies winning lines for a spin grid.
    Delegates to the payline and scatter helpers; the total is their Decimal sum.

    Args:
        grid (list[list[int]]): The spin grid.
        catalog (SymbolCatalog): The game variant the grid was drawn for.

    Returns:
        dict: ``total_multiplier``, ``winning_lines``, ``winning_symbol_coords``, ``breakdown_text``.
    """
    skip_symbol_ids = {s_id for s_id in (catalog.scatter_symbol_id, catalog.bonus_symbol_id) if s_id is not None}

    payline_results = _calculate_payline_wins_for_grid(
        grid, catalog.paylines, catalog.paytables, catalog.wild_symbol_id,
        skip_symbol_ids, catalog.min_symbols_to_match
    )
    scatter_results = _calculate_scatter_wins_for_grid(
        grid, catalog.scatter_symbol_id, catalog.scatter_payouts
    )

    total_multiplier = payline_results["multiplier"] + scatter_results["multiplier"]
    winning_lines_data = payline_results["winning_lines"] + scatter_results["winning_lines"]

    all_winning_symbol_coords = set()
    for line in winning_lines_data:
        all_winning_symbol_coords.update(tuple(pos) for pos in line["positions"])

    return {
        "total_multiplier": total_multiplier,
        "winning_lines": winning_lines_data,
        "winning_symbol_coords": sorted(list(coords) for coords in all_winning_symbol_coords),
        "breakdown_text": format_breakdown(winning_lines_data, catalog),
    }


def check_bonus_trigger(grid, catalog):
    """
    Checks if the bonus-symbol count on the grid reaches the mini-game trigger count.
    """
    bonus_config = catalog.bonus_config
    if not bonus_config or catalog.bonus_symbol_id is None:
        return {'triggered': False}

    bonus_symbol_count = count_symbol(grid, catalog.bonus_symbol_id)
    if bonus_symbol_count >= bonus_config['trigger_count']:
        logger.debug(f"Bonus triggered on {catalog.short_name} with {bonus_symbol_count} bonus symbols")
        return {
            'triggered': True,
            'type': bonus_config['type'],
            'symbol_count': bonus_symbol_count,
            'trigger_count': bonus_config['trigger_count'],
        }
    return {'triggered': False, 'symbol_count': bonus_symbol_count}
