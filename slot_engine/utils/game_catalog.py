import json
import logging
import os
from decimal import Decimal

from slot_engine.exceptions import ConfigurationException, GameNotFoundException
from slot_engine.utils.weighted_sampler import WeightedSampler

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'game_configs'))
DEFAULT_MIN_SYMBOLS_TO_MATCH = 2


def load_game_config(slot_short_name, config_dir=None):
    """
    Loads the game configuration JSON file for a given slot and validates its structure.

    Fractional numbers are parsed straight into ``Decimal`` so paytable multipliers
    keep their exact written value.

    Args:
        slot_short_name (str): The short name of the slot, used to find its configuration file.
        config_dir (str | None): Directory holding ``<short_name>/gameConfig.json`` folders.

    Returns:
        dict: The loaded and validated game configuration object.

    Raises:
        GameNotFoundException: If no configuration file exists for the slot.
        ConfigurationException: If the JSON is malformed or the structure is invalid.
    """
    base_dir = config_dir or DEFAULT_CONFIG_DIR
    file_path = os.path.join(base_dir, slot_short_name, "gameConfig.json")

    if not os.path.exists(file_path):
        logger.error(f"Configuration file not found for slot '{slot_short_name}' at {file_path}")
        raise GameNotFoundException(
            f"Configuration file not found for slot '{slot_short_name}'",
            details={'path': file_path}
        )

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            config = json.load(f, parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise ConfigurationException(
            f"Invalid JSON in {file_path}: {e.msg} (line {e.lineno}, col {e.colno})"
        ) from e

    _validate_game_config(config, slot_short_name)
    logger.info(f"Loaded and validated config for '{slot_short_name}' from {file_path}")
    return config


def _is_number(value):
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _validate_count_table(table, slot_short_name, path, monotonic=False):
    """Checks a {count: multiplier} table: positive integer keys, non-negative numbers."""
    def fail(msg):
        raise ConfigurationException(f"Config validation error for slot '{slot_short_name}': {path} {msg}")

    if not isinstance(table, dict):
        fail("must be a dictionary.")
    previous = None
    for key in sorted(table, key=lambda k: int(k) if str(k).isdigit() else -1):
        if not str(key).isdigit() or int(key) <= 0:
            fail(f"key '{key}' must be a positive integer count.")
        value = table[key]
        if not _is_number(value) or value < 0:
            fail(f"['{key}'] must be a non-negative number.")
        if monotonic and previous is not None and value < previous:
            fail(f"must be non-decreasing, ['{key}'] is lower than a smaller count.")
        previous = value


def _validate_game_config(config, slot_short_name):
    """
    Validates the structure and essential content of a game configuration object.

    Raises:
        ConfigurationException: If any validation check fails.
    """
    def fail(msg):
        raise ConfigurationException(f"Config validation error for slot '{slot_short_name}': {msg}")

    if not isinstance(config, dict):
        fail("Root must be a dictionary.")
    game = config.get('game')
    if not isinstance(game, dict):
        fail("'game' key must be a dictionary.")

    for key in ('name', 'short_name'):
        value = game.get(key)
        if not isinstance(value, str) or not value.strip():
            fail(f"game.{key} must be a non-empty str.")

    layout = game.get('layout')
    if not isinstance(layout, dict): fail("game.layout must be a dictionary.")
    rows = layout.get('rows')
    if not isinstance(rows, int) or isinstance(rows, bool) or rows <= 0: fail("game.layout.rows must be a positive integer.")
    columns = layout.get('columns')
    if not isinstance(columns, int) or isinstance(columns, bool) or columns <= 0: fail("game.layout.columns must be a positive integer.")

    paylines = layout.get('paylines')
    if not isinstance(paylines, list) or not paylines: fail("game.layout.paylines must be a non-empty list.")
    seen_line_ids = set()
    for i, pl in enumerate(paylines):
        if not isinstance(pl, dict): fail(f"game.layout.paylines[{i}] must be a dictionary.")
        if 'id' not in pl or 'coords' not in pl: fail(f"game.layout.paylines[{i}] must have 'id' and 'coords'.")
        if pl['id'] in seen_line_ids: fail(f"game.layout.paylines[{i}].id '{pl['id']}' is duplicated.")
        seen_line_ids.add(pl['id'])
        if not isinstance(pl['coords'], list) or not pl['coords']: fail(f"game.layout.paylines[{i}].coords must be a non-empty list.")
        for j, coord in enumerate(pl['coords']):
            if not (isinstance(coord, list) and len(coord) == 2 and all(isinstance(v, int) and not isinstance(v, bool) for v in coord)):
                fail(f"game.layout.paylines[{i}].coords[{j}] must be a list of two integers.")
            r, c = coord
            if not (0 <= r < rows and 0 <= c < columns):
                fail(f"game.layout.paylines[{i}].coords[{j}] ([{r},{c}]) out of bounds (rows: {rows}, cols: {columns}).")

    symbols_data = game.get('symbols')
    if not isinstance(symbols_data, list) or not symbols_data: fail("game.symbols must be a non-empty list.")
    collected_symbol_ids = set()
    flagged = {'is_wild': set(), 'is_scatter': set(), 'is_bonus': set(), 'is_placeholder': set()}
    for i, sym in enumerate(symbols_data):
        if not isinstance(sym, dict): fail(f"game.symbols[{i}] must be a dictionary.")
        sym_id = sym.get('id')
        if not isinstance(sym_id, int) or isinstance(sym_id, bool): fail(f"game.symbols[{i}].id must be an int.")
        if sym_id in collected_symbol_ids: fail(f"game.symbols[{i}].id {sym_id} is duplicated.")
        collected_symbol_ids.add(sym_id)
        if not isinstance(sym.get('name'), str) or not sym['name'].strip(): fail(f"game.symbols[{i}].name must be a non-empty str.")
        if not isinstance(sym.get('icon', ''), str): fail(f"game.symbols[{i}].icon must be a str.")
        for flag in flagged:
            if flag in sym and not isinstance(sym[flag], bool): fail(f"game.symbols[{i}].{flag} must be a bool if present.")
            if sym.get(flag): flagged[flag].add(sym_id)
        if not sym.get('is_placeholder'):
            weight = sym.get('weight')
            if not _is_number(weight) or weight <= 0:
                fail(f"game.symbols[{i}].weight must be a positive number.")
        if 'value_multipliers' in sym:
            _validate_count_table(sym['value_multipliers'], slot_short_name, f"game.symbols[{i}].value_multipliers")
        if 'scatter_payouts' in sym:
            _validate_count_table(sym['scatter_payouts'], slot_short_name, f"game.symbols[{i}].scatter_payouts")

    special_ids = {}
    for flag, key, required in [('is_wild', 'wild_symbol_id', True), ('is_scatter', 'scatter_symbol_id', False),
                                ('is_bonus', 'bonus_symbol_id', False), ('is_placeholder', 'placeholder_symbol_id', False)]:
        s_id = game.get(key)
        if s_id is not None and (not isinstance(s_id, int) or s_id not in collected_symbol_ids):
            fail(f"game.{key} ID {s_id} is invalid or not found in defined symbols.")
        candidates = set(flagged[flag])
        if s_id is not None:
            candidates.add(s_id)
        if len(candidates) > 1:
            fail(f"only one symbol may be marked {flag}, found {sorted(candidates)}.")
        if required and not candidates:
            fail(f"exactly one symbol must be marked {flag}.")
        special_ids[key] = next(iter(candidates)) if candidates else None

    assigned = [v for v in special_ids.values() if v is not None]
    if len(assigned) != len(set(assigned)):
        fail("wild, scatter, bonus and placeholder symbols must be distinct.")

    drawable = [s for s in symbols_data if not s.get('is_placeholder')]
    if not drawable:
        fail("at least one symbol must be drawable (not a placeholder).")

    min_match = game.get('min_symbols_to_match')
    if min_match is not None and (not isinstance(min_match, int) or isinstance(min_match, bool) or min_match <= 0):
        fail("game.min_symbols_to_match must be a positive integer if present.")

    bonus_features = game.get('bonus_features')
    if bonus_features is not None:
        if not isinstance(bonus_features, dict): fail("game.bonus_features must be a dictionary if present.")
        mini_game = bonus_features.get('mini_game')
        if mini_game is not None:
            if not isinstance(mini_game, dict): fail("game.bonus_features.mini_game must be a dictionary.")
            if special_ids['bonus_symbol_id'] is None:
                fail("game.bonus_features.mini_game requires a bonus symbol.")
            trigger_count = mini_game.get('trigger_count')
            if not (isinstance(trigger_count, int) and not isinstance(trigger_count, bool) and trigger_count > 0):
                fail("game.bonus_features.mini_game.trigger_count must be a positive integer.")
            boost_chance = mini_game.get('boost_chance')
            if not (_is_number(boost_chance) and 0 <= boost_chance <= 1):
                fail("game.bonus_features.mini_game.boost_chance must be a number between 0 and 1.")
            tiers = mini_game.get('payout_tiers')
            if not isinstance(tiers, dict) or not tiers:
                fail("game.bonus_features.mini_game.payout_tiers must be a non-empty dictionary.")
            _validate_count_table(tiers, slot_short_name, "game.bonus_features.mini_game.payout_tiers", monotonic=True)
            special = set(assigned)
            if not any(s['id'] not in special for s in symbols_data):
                fail("game.bonus_features.mini_game needs at least one non-special symbol to fill reveals.")


def _count_table(table):
    return {int(k): Decimal(str(v)) for k, v in (table or {}).items()}


class SymbolCatalog:
    """
    Immutable view of one validated game variant: symbol alphabet, weights,
    paytables, paylines and bonus settings. Variants differ only by configuration.
    """

    def __init__(self, game_config, rng=None):
        game = game_config['game']
        layout = game['layout']

        self.name = game['name']
        self.short_name = game['short_name']
        self.rows = layout['rows']
        self.columns = layout['columns']
        self.paylines = tuple(
            {'id': pl['id'], 'coords': tuple((r, c) for r, c in pl['coords'])}
            for pl in layout['paylines']
        )
        self.symbols_map = {s['id']: dict(s) for s in game['symbols']}
        self.min_symbols_to_match = game.get('min_symbols_to_match') or DEFAULT_MIN_SYMBOLS_TO_MATCH

        def special(flag, key):
            if game.get(key) is not None:
                return game[key]
            return next((s['id'] for s in game['symbols'] if s.get(flag)), None)

        self.wild_symbol_id = special('is_wild', 'wild_symbol_id')
        self.scatter_symbol_id = special('is_scatter', 'scatter_symbol_id')
        self.bonus_symbol_id = special('is_bonus', 'bonus_symbol_id')
        self.placeholder_symbol_id = special('is_placeholder', 'placeholder_symbol_id')

        self.paytables = {s_id: _count_table(s.get('value_multipliers')) for s_id, s in self.symbols_map.items()}
        self.scatter_payouts = {}
        if self.scatter_symbol_id is not None:
            self.scatter_payouts = _count_table(self.symbols_map[self.scatter_symbol_id].get('scatter_payouts'))

        self.bonus_config = None
        mini_game = (game.get('bonus_features') or {}).get('mini_game')
        if mini_game:
            self.bonus_config = {
                'type': 'mini_game',
                'trigger_count': mini_game['trigger_count'],
                'boost_chance': Decimal(str(mini_game['boost_chance'])),
                'payout_tiers': _count_table(mini_game['payout_tiers']),
            }

        special_ids = {self.wild_symbol_id, self.scatter_symbol_id, self.bonus_symbol_id, self.placeholder_symbol_id}
        self.non_special_symbol_ids = tuple(s_id for s_id in self.symbols_map if s_id not in special_ids)
        self.weight_table = tuple(
            (s['id'], s['weight']) for s in game['symbols'] if not s.get('is_placeholder')
        )
        self.sampler = WeightedSampler(self.weight_table, rng=rng)

    def __repr__(self):
        return f"<SymbolCatalog {self.short_name} {self.rows}x{self.columns} lines={len(self.paylines)}>"

    def symbol_name(self, symbol_id):
        symbol = self.symbols_map.get(symbol_id)
        return symbol['name'] if symbol else str(symbol_id)

    def icon_for(self, symbol_id):
        symbol = self.symbols_map.get(symbol_id)
        return symbol.get('icon') or symbol['name'] if symbol else '❓'

    def render_grid(self, grid):
        return "\n".join(" ".join(self.icon_for(s_id) for s_id in row) for row in grid)

    def is_special(self, symbol_id):
        return symbol_id not in self.non_special_symbol_ids

    def describe_paytable(self):
        """Rows of (symbol name, icon, {count: multiplier}) for display."""
        rows = []
        for s_id, table in self.paytables.items():
            if table:
                rows.append((self.symbol_name(s_id), self.icon_for(s_id), dict(sorted(table.items()))))
        return rows


class GameCatalog:
    """All shipped game variants, loaded and validated once at startup."""

    def __init__(self, config_dir=None, short_names=None, rng=None):
        self.config_dir = config_dir or DEFAULT_CONFIG_DIR
        if short_names is None:
            short_names = sorted(
                entry for entry in os.listdir(self.config_dir)
                if os.path.isfile(os.path.join(self.config_dir, entry, 'gameConfig.json'))
            )
        self._catalogs = {}
        for short_name in short_names:
            self._catalogs[short_name] = SymbolCatalog(load_game_config(short_name, self.config_dir), rng=rng)
        logger.info(f"Game catalog ready with variants: {', '.join(self._catalogs) or 'none'}")

    def __contains__(self, short_name):
        return short_name in self._catalogs

    def __iter__(self):
        return iter(self._catalogs.values())

    def short_names(self):
        return list(self._catalogs)

    def get(self, short_name):
        catalog = self._catalogs.get(short_name)
        if catalog is None:
            raise GameNotFoundException(f"Unknown game '{short_name}'", details={'game': short_name})
        return catalog
