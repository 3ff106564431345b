import copy
import json
from decimal import Decimal

import pytest

from slot_engine.exceptions import ConfigurationException, GameNotFoundException
from slot_engine.utils.game_catalog import GameCatalog, SymbolCatalog, load_game_config

VALID_CONFIG = {
    "game": {
        "name": "Tiny Slot",
        "short_name": "tiny",
        "layout": {
            "rows": 2,
            "columns": 3,
            "paylines": [
                {"id": "top", "coords": [[0, 0], [0, 1], [0, 2]]},
                {"id": "bottom", "coords": [[1, 0], [1, 1], [1, 2]]},
            ],
        },
        "symbols": [
            {"id": 1, "name": "Cherry", "icon": "🍒", "weight": 10, "value_multipliers": {"3": 5}},
            {"id": 2, "name": "Bell", "icon": "🔔", "weight": 4.5, "value_multipliers": {"3": 12.5}},
            {"id": 3, "name": "Wild", "icon": "🃏", "weight": 1, "is_wild": True},
            {"id": 4, "name": "Star", "icon": "⭐", "weight": 1, "is_bonus": True},
            {"id": 5, "name": "Locked", "icon": "🔒", "is_placeholder": True},
        ],
        "wild_symbol_id": 3,
        "bonus_symbol_id": 4,
        "placeholder_symbol_id": 5,
        "bonus_features": {
            "mini_game": {"trigger_count": 3, "boost_chance": 0.25, "payout_tiers": {"3": 1, "4": 5}}
        },
    }
}


def write_config(base_dir, config, short_name="tiny"):
    slot_dir = base_dir / short_name
    slot_dir.mkdir(parents=True, exist_ok=True)
    (slot_dir / "gameConfig.json").write_text(json.dumps(config), encoding="utf-8")
    return str(base_dir)


@pytest.fixture
def config():
    return copy.deepcopy(VALID_CONFIG)


def test_shipped_variants_load():
    catalog = GameCatalog()
    assert set(catalog.short_names()) >= {"classic", "slots3x3", "advanced5x5", "advanced5x4"}

    classic = catalog.get("classic")
    assert (classic.rows, classic.columns, len(classic.paylines)) == (1, 3, 1)
    assert classic.bonus_config is None

    advanced = catalog.get("advanced5x5")
    assert (advanced.rows, advanced.columns, len(advanced.paylines)) == (5, 5, 13)
    assert advanced.bonus_config["trigger_count"] == 4
    assert advanced.bonus_config["boost_chance"] == Decimal("0.35")
    assert advanced.scatter_payouts[5] == Decimal("50")
    assert advanced.placeholder_symbol_id not in dict(advanced.weight_table)

    assert (catalog.get("advanced5x4").rows, len(catalog.get("slots3x3").paylines)) == (4, 5)


def test_unknown_game_raises_not_found(tmp_path):
    with pytest.raises(GameNotFoundException):
        load_game_config("missing", str(tmp_path))
    with pytest.raises(GameNotFoundException):
        GameCatalog().get("missing")


def test_catalog_loads_only_requested_variants(tmp_path, config):
    config_dir = write_config(tmp_path, config)
    catalog = GameCatalog(config_dir, short_names=["tiny"])
    assert "tiny" in catalog
    assert "classic" not in catalog
    assert [c.short_name for c in catalog] == ["tiny"]


def test_fractional_values_load_as_decimal(tmp_path, config):
    game = SymbolCatalog(load_game_config("tiny", write_config(tmp_path, config)))
    assert game.paytables[2] == {3: Decimal("12.5")}
    assert game.sampler.total_weight == Decimal("16.5")
    assert game.non_special_symbol_ids == (1, 2)
    assert game.is_special(3)
    assert not game.is_special(1)


def test_catalog_display_helpers(tmp_path, config):
    game = SymbolCatalog(load_game_config("tiny", write_config(tmp_path, config)))
    assert game.render_grid([[1, 2, 3], [4, 5, 1]]) == "🍒 🔔 🃏\n⭐ 🔒 🍒"
    assert game.icon_for(99) == "❓"
    assert game.symbol_name(2) == "Bell"
    assert [name for name, _, _ in game.describe_paytable()] == ["Cherry", "Bell"]


def test_invalid_json_raises_configuration_error(tmp_path):
    slot_dir = tmp_path / "broken"
    slot_dir.mkdir()
    (slot_dir / "gameConfig.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationException):
        load_game_config("broken", str(tmp_path))


def _break_coords(game):
    game["layout"]["paylines"][0]["coords"][2] = [0, 3]


def _duplicate_symbol(game):
    game["symbols"][1]["id"] = 1


def _zero_weight(game):
    game["symbols"][0]["weight"] = 0


def _second_wild(game):
    game["symbols"][1]["is_wild"] = True


def _no_wild(game):
    del game["wild_symbol_id"]
    del game["symbols"][2]["is_wild"]


def _decreasing_tiers(game):
    game["bonus_features"]["mini_game"]["payout_tiers"] = {"3": 5, "4": 1}


def _mini_game_without_bonus_symbol(game):
    del game["bonus_symbol_id"]
    del game["symbols"][3]["is_bonus"]


def _boost_out_of_range(game):
    game["bonus_features"]["mini_game"]["boost_chance"] = 1.5


def _duplicate_line_id(game):
    game["layout"]["paylines"][1]["id"] = "top"


def _empty_paylines(game):
    game["layout"]["paylines"] = []


def _bad_count_key(game):
    game["symbols"][0]["value_multipliers"] = {"three": 5}


@pytest.mark.parametrize("mutate", [
    _break_coords, _duplicate_symbol, _zero_weight, _second_wild, _no_wild, _decreasing_tiers,
    _mini_game_without_bonus_symbol, _boost_out_of_range, _duplicate_line_id, _empty_paylines,
    _bad_count_key,
])
def test_invalid_configs_are_rejected(tmp_path, config, mutate):
    mutate(config["game"])
    with pytest.raises(ConfigurationException) as excinfo:
        load_game_config("tiny", write_config(tmp_path, config))
    assert "Config validation error for slot 'tiny'" in excinfo.value.status_message
