#!/usr/bin/env python3
"""
Slot Engine Admin CLI Tool

A command-line interface for slot engine administration:
- Game variant inspection (list, paytables)
- RTP simulation
- Jackpot pool inspection and seeding
- One-off demo spins

Usage:
    slot-engine-admin --help
    slot-engine-admin games list
    slot-engine-admin simulate advanced5x5 --spins 100000 --bet 1
    slot-engine-admin jackpots show --group 1234567890
"""

import json
import random
from decimal import Decimal, InvalidOperation

import click

from slot_engine.config import Config
from slot_engine.exceptions import AppException
from slot_engine.schemas import SpinResultSchema
from slot_engine.services.jackpot_service import ProgressiveJackpotManager
from slot_engine.services.pool_store import create_pool_store
from slot_engine.services.slot_service import SlotMachineService
from slot_engine.services.wallet import InMemoryWallet
from slot_engine.utils.bonus_round import BonusRoundEngine
from slot_engine.utils.game_catalog import GameCatalog
from slot_engine.utils.slot_tester import SlotTester


def parse_amount(value: str) -> Decimal:
    """Convert a CLI amount string to a positive Decimal."""
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"Invalid amount: {value}")
    if not amount.is_finite() or amount <= 0:
        raise click.BadParameter(f"Amount must be positive: {value}")
    return amount


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config-dir', default=None, help='Directory holding <short_name>/gameConfig.json')
@click.pass_context
def cli(ctx, verbose, config_dir):
    """Slot Engine Admin CLI - Administrative tools for the slot engine."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['config_dir'] = config_dir or Config.GAME_CONFIG_DIR


@cli.group()
def games():
    """Game variant commands."""
    pass


@cli.group()
@click.option('--store-uri', default=None, help='Jackpot store (json://<dir> or database URL)')
@click.pass_context
def jackpots(ctx, store_uri):
    """Jackpot pool commands."""
    ctx.obj['store_uri'] = store_uri or Config.JACKPOT_STORE_URI


@games.command('list')
@click.pass_context
def list_games(ctx):
    """List every configured game variant."""
    try:
        catalog = GameCatalog(ctx.obj['config_dir'])
    except AppException as e:
        click.echo(f"❌ {e.status_message}", err=True)
        raise SystemExit(1)

    click.echo(f"{'Short name':<15} {'Name':<22} {'Grid':<6} {'Lines':<6} {'Bonus'}")
    click.echo("-" * 60)
    for game in catalog:
        bonus = f"{game.bonus_config['trigger_count']}+ {game.icon_for(game.bonus_symbol_id)}" if game.bonus_config else "-"
        click.echo(f"{game.short_name:<15} {game.name:<22} {game.columns}x{game.rows:<4} {len(game.paylines):<6} {bonus}")


@games.command('paytable')
@click.argument('short_name')
@click.pass_context
def show_paytable(ctx, short_name):
    """Show line, scatter and bonus payouts for a game."""
    try:
        game = GameCatalog(ctx.obj['config_dir'], short_names=[short_name]).get(short_name)
    except AppException as e:
        click.echo(f"❌ {e.status_message}", err=True)
        raise SystemExit(1)

    click.echo(f"🎰 {game.name} ({game.columns}x{game.rows}, {len(game.paylines)} lines)")
    click.echo("Symbol payouts (per line):")
    for name, icon, table in game.describe_paytable():
        payouts = ", ".join(f"{count}={multiplier}x" for count, multiplier in table.items())
        click.echo(f"  {icon} {name}: {payouts}")
    if game.scatter_payouts:
        payouts = ", ".join(f"{count}+={multiplier}x" for count, multiplier in sorted(game.scatter_payouts.items()))
        click.echo(f"Scatter {game.icon_for(game.scatter_symbol_id)}: {payouts}")
    if game.bonus_config:
        icon = game.icon_for(game.bonus_symbol_id)
        click.echo(f"Mini-game: {game.bonus_config['trigger_count']} or more {icon} to trigger")
        payouts = " | ".join(f"{count}{icon}={multiplier}x" for count, multiplier in sorted(game.bonus_config['payout_tiers'].items()))
        click.echo(f"  {payouts}")


@cli.command()
@click.argument('short_name')
@click.option('--spins', default=10000, show_default=True, type=int, help='Number of spins')
@click.option('--bet', default='1', show_default=True, help='Bet per spin')
@click.option('--seed', default=None, type=int, help='Seed for a reproducible run')
@click.pass_context
def simulate(ctx, short_name, spins, bet, seed):
    """Estimate RTP and hit rates by simulating spins."""
    bet_amount = parse_amount(bet)
    rng = random.Random(seed) if seed is not None else None
    tester = SlotTester(short_name, spins, bet_amount, rng=rng, config_dir=ctx.obj['config_dir'])
    if not tester.run_simulation():
        click.echo(f"❌ Could not load game '{short_name}'", err=True)
        raise SystemExit(1)
    tester.print_summary_statistics()


@cli.command()
@click.argument('short_name')
@click.option('--group', 'group_id', default='demo', show_default=True, help='Group id')
@click.option('--player', 'player_id', default='admin', show_default=True, help='Player id')
@click.option('--bet', default='1', show_default=True, help='Bet amount')
@click.option('--seed', default=None, type=int, help='Seed for a reproducible spin')
@click.pass_context
def spin(ctx, short_name, group_id, player_id, bet, seed):
    """Play one demo spin against a throwaway wallet and print the settlement as JSON."""

    bet_amount = parse_amount(bet)
    rng = random.Random(seed) if seed is not None else None
    try:
        catalog = GameCatalog(ctx.obj['config_dir'], short_names=[short_name], rng=rng)
    except AppException as e:
        click.echo(f"❌ {e.status_message}", err=True)
        raise SystemExit(1)

    wallet = InMemoryWallet({(group_id, player_id): bet_amount})
    service = SlotMachineService(catalog, wallet, ProgressiveJackpotManager(rng=rng),
                                 BonusRoundEngine(Config.TOKEN_SECRET, salt=Config.TOKEN_SALT, rng=rng))
    result = service.spin(group_id, player_id, short_name, bet_amount)
    if not result['success']:
        click.echo(f"❌ {result['message']}", err=True)
        raise SystemExit(1)

    click.echo(result['display_grid'])
    click.echo(result['breakdown_text'])
    if ctx.obj['verbose']:
        click.echo(json.dumps(SpinResultSchema().dump(result), indent=2, ensure_ascii=False))


@jackpots.command('show')
@click.option('--group', 'group_ids', multiple=True, help='Group id (repeatable); all saved groups by default')
@click.pass_context
def show_jackpots(ctx, group_ids):
    """Display saved jackpot meters."""
    try:
        store = create_pool_store(ctx.obj['store_uri'])
        pools = store.load_pools(list(group_ids)) if group_ids else store.load_all()
    except AppException as e:
        click.echo(f"❌ {e.status_message}", err=True)
        raise SystemExit(1)

    if not pools:
        click.echo("No jackpot pools found.")
        return

    for group_id, pool in sorted(pools.items()):
        click.echo(f"🏆 Group {group_id}")
        for tier, value in pool.meters.items():
            click.echo(f"  {tier:<6} {value:>14}  (floor {pool.floors.get(tier)})")
        if ctx.obj['verbose'] and pool.updated_at:
            click.echo(f"  updated {pool.updated_at.isoformat()}")


@jackpots.command('seed')
@click.option('--group', 'group_ids', multiple=True, required=True, help='Group id (repeatable)')
@click.pass_context
def seed_jackpots(ctx, group_ids):
    """Create pools at their floor values for groups that have none."""
    try:
        store = create_pool_store(ctx.obj['store_uri'])
        manager = ProgressiveJackpotManager(rake=Config.JACKPOT_RAKE)
        existing = store.load_pools(list(group_ids))
        manager.load_pools(existing)
        created = [g for g in group_ids if g not in existing]
        for group_id in created:
            manager.seed_pool(group_id)
        manager.flush(store)
    except AppException as e:
        click.echo(f"❌ {e.status_message}", err=True)
        raise SystemExit(1)

    for group_id in group_ids:
        status = "created" if group_id in created else "already present"
        click.echo(f"✅ Group {group_id}: {status}")


if __name__ == '__main__':
    cli()
