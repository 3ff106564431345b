"""
Progressive Jackpot Service
Per-group three-tier jackpot meters with wager-scaled hit chances
"""

import logging
import secrets
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from slot_engine.exceptions import ConfigurationException, InvalidWagerException
from slot_engine.schemas import JACKPOT_TIER_IDS
from slot_engine.utils.game_event_logger import GameEventLogger

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
ONE = Decimal('1')


class TierSetting:
    """Constant configuration for one jackpot tier."""

    def __init__(self, tier_id: str, base_probability, scaling_bet, max_multiplier, floor, share):
        self.tier_id = tier_id
        self.base_probability = Decimal(str(base_probability))
        self.scaling_bet = Decimal(str(scaling_bet))
        self.max_multiplier = Decimal(str(max_multiplier))
        self.floor = Decimal(str(floor))
        self.share = Decimal(str(share))

    def __repr__(self):
        return f"<TierSetting {self.tier_id} p={self.base_probability} floor={self.floor} share={self.share}>"

    def hit_probability(self, wager) -> Decimal:
        """
        ``base_probability`` at wager 0, rising linearly to ``base_probability * max_multiplier``
        at ``scaling_bet`` and capped there for larger wagers.
        """
        wager = Decimal(str(wager))
        ratio = min(max(wager, ZERO) / self.scaling_bet, ONE)
        return self.base_probability * (ONE + (self.max_multiplier - ONE) * ratio)


# Priority order: highest value tier first
DEFAULT_TIER_SETTINGS = (
    TierSetting('mega', base_probability='0.00001', scaling_bet=25, max_multiplier=10, floor=1000, share='0.5'),
    TierSetting('minor', base_probability='0.0001', scaling_bet=25, max_multiplier=10, floor=250, share='0.3'),
    TierSetting('mini', base_probability='0.001', scaling_bet=25, max_multiplier=10, floor=50, share='0.2'),
)
DEFAULT_RAKE = Decimal('0.5')


class JackpotPool:
    """Meters for one group. Instances handed out by the manager are copies."""

    def __init__(self, group_id: str, meters: Dict[str, Decimal], floors: Dict[str, Decimal],
                 updated_at: Optional[datetime] = None):
        self.group_id = group_id
        self.meters = {tier: Decimal(str(v)) for tier, v in meters.items()}
        self.floors = {tier: Decimal(str(v)) for tier, v in floors.items()}
        self.updated_at = updated_at

    def __repr__(self):
        meters = ", ".join(f"{tier}={value}" for tier, value in self.meters.items())
        return f"<JackpotPool {self.group_id} {meters}>"

    def __eq__(self, other):
        if not isinstance(other, JackpotPool):
            return NotImplemented
        return (self.group_id, self.meters, self.floors) == (other.group_id, other.meters, other.floors)

    @classmethod
    def at_floor(cls, group_id: str, tier_settings: Iterable[TierSetting]):
        tier_settings = list(tier_settings)
        return cls(
            group_id,
            meters={t.tier_id: t.floor for t in tier_settings},
            floors={t.tier_id: t.floor for t in tier_settings},
            updated_at=datetime.now(timezone.utc),
        )

    def copy(self):
        return JackpotPool(self.group_id, dict(self.meters), dict(self.floors), self.updated_at)

    def to_dict(self):
        """Shape accepted by ``JackpotPoolSchema``."""
        return {
            'group_id': self.group_id,
            'tiers': [
                {'tier': tier, 'value': value, 'floor': self.floors.get(tier, ZERO)}
                for tier, value in self.meters.items()
            ],
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data):
        """Builds a pool from ``JackpotPoolSchema().load(...)`` output."""
        return cls(
            data['group_id'],
            meters={t['tier']: t['value'] for t in data['tiers']},
            floors={t['tier']: t['floor'] for t in data['tiers']},
            updated_at=data.get('updated_at'),
        )


class ProgressiveJackpotManager:
    """
    Owns every group's jackpot pool.

    Each group has its own re-entrant lock; hit tests and contributions for the
    same group are serialized while unrelated groups proceed independently.
    """

    def __init__(self, tier_settings: Iterable[TierSetting] = DEFAULT_TIER_SETTINGS,
                 rake=DEFAULT_RAKE, rng=None):
        self.tier_settings: List[TierSetting] = list(tier_settings)
        self.rake = Decimal(str(rake))
        self.rng = rng if rng is not None else secrets.SystemRandom()
        self._validate_settings()

        self._pools: Dict[str, JackpotPool] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _validate_settings(self):
        def fail(msg):
            raise ConfigurationException(f"Jackpot tier configuration error: {msg}")

        if not self.tier_settings:
            fail("at least one tier is required.")
        seen = set()
        for tier in self.tier_settings:
            if tier.tier_id not in JACKPOT_TIER_IDS:
                fail(f"unknown tier '{tier.tier_id}'.")
            if tier.tier_id in seen:
                fail(f"tier '{tier.tier_id}' is configured twice.")
            seen.add(tier.tier_id)
            if not (ZERO < tier.base_probability <= ONE):
                fail(f"{tier.tier_id} base probability must be in (0, 1].")
            if tier.scaling_bet <= 0:
                fail(f"{tier.tier_id} scaling bet must be positive.")
            if tier.max_multiplier < ONE:
                fail(f"{tier.tier_id} max multiplier must be at least 1.")
            if tier.base_probability * tier.max_multiplier > ONE:
                fail(f"{tier.tier_id} probability exceeds 1 at the scaling bet.")
            if tier.floor < 0:
                fail(f"{tier.tier_id} floor must not be negative.")
            if tier.share < 0:
                fail(f"{tier.tier_id} share must not be negative.")
        if sum(t.share for t in self.tier_settings) != ONE:
            fail("tier shares must sum to 1.")
        if not (ZERO <= self.rake <= ONE):
            fail("rake must be between 0 and 1.")

    # --- Locking ---
    def _group_lock(self, group_id: str) -> threading.RLock:
        lock = self._locks.get(group_id)
        if lock is None:
            with self._registry_lock:
                lock = self._locks.setdefault(group_id, threading.RLock())
        return lock

    def _pool_for(self, group_id: str) -> JackpotPool:
        """Caller must hold the group lock."""
        pool = self._pools.get(group_id)
        if pool is None:
            pool = JackpotPool.at_floor(group_id, self.tier_settings)
            self._pools[group_id] = pool
            logger.info(f"Created jackpot pool for group {group_id}")
            GameEventLogger.log_jackpot_event('pool_created', group_id, details=pool.to_dict())
        return pool

    @staticmethod
    def _check_wager(wager) -> Decimal:
        wager = Decimal(str(wager))
        if wager < 0:
            raise InvalidWagerException(details={'wager': str(wager)})
        return wager

    # --- Queries ---
    def tier(self, tier_id: str) -> TierSetting:
        for tier in self.tier_settings:
            if tier.tier_id == tier_id:
                return tier
        raise KeyError(tier_id)

    def hit_probability(self, tier_id: str, wager) -> Decimal:
        return self.tier(tier_id).hit_probability(wager)

    def get_pool(self, group_id: str) -> JackpotPool:
        with self._group_lock(group_id):
            return self._pool_for(group_id).copy()

    def groups(self) -> List[str]:
        return list(self._pools)

    # --- Mutations ---
    def try_hit(self, group_id: str, wager) -> dict:
        """
        Tests each tier in priority order with one uniform draw. The first hit pays the
        tier's current meter, resets that meter to its floor and stops the scan.
        """
        wager = self._check_wager(wager)
        with self._group_lock(group_id):
            pool = self._pool_for(group_id)
            for tier in self.tier_settings:
                probability = tier.hit_probability(wager)
                roll = Decimal(str(self.rng.random()))
                if roll < probability:
                    amount = pool.meters[tier.tier_id]
                    pool.meters[tier.tier_id] = tier.floor
                    pool.updated_at = datetime.now(timezone.utc)
                    logger.info(f"Jackpot {tier.tier_id} hit in group {group_id} for {amount}")
                    return {'hit': True, 'tier': tier.tier_id, 'amount': amount}
        return {'hit': False, 'tier': None, 'amount': ZERO}

    def contribute(self, group_id: str, wager) -> Dict[str, Decimal]:
        """Adds ``wager * rake * share`` to every tier's meter. Returns the increments."""
        wager = self._check_wager(wager)
        increments = {}
        with self._group_lock(group_id):
            pool = self._pool_for(group_id)
            for tier in self.tier_settings:
                increment = wager * self.rake * tier.share
                pool.meters[tier.tier_id] += increment
                increments[tier.tier_id] = increment
            pool.updated_at = datetime.now(timezone.utc)
        return increments

    def process_wager(self, group_id: str, wager, player_id=None) -> dict:
        """Hit test, then contribute only on a miss, under one hold of the group lock."""
        with self._group_lock(group_id):
            result = self.try_hit(group_id, wager)
            if result['hit']:
                result['contributions'] = {}
                GameEventLogger.log_jackpot_event(
                    'hit', group_id, player_id, tier=result['tier'], amount=result['amount'],
                    details={'wager': str(wager)}
                )
            else:
                result['contributions'] = self.contribute(group_id, wager)
        return result

    def seed_pool(self, group_id: str) -> JackpotPool:
        return self.get_pool(group_id)

    # --- Persistence ---
    def snapshot(self) -> Dict[str, JackpotPool]:
        """Consistent copy of each pool, taken under that pool's lock."""
        snapshot = {}
        for group_id in list(self._pools):
            with self._group_lock(group_id):
                snapshot[group_id] = self._pools[group_id].copy()
        return snapshot

    def load_pools(self, pools: Dict[str, JackpotPool]):
        """Installs pools loaded from a store, adding any missing tier at its floor."""
        for group_id, pool in pools.items():
            with self._group_lock(group_id):
                restored = pool.copy()
                for tier in self.tier_settings:
                    if tier.tier_id not in restored.meters:
                        logger.warning(f"Pool for group {group_id} lacks tier {tier.tier_id}; starting it at floor")
                        restored.meters[tier.tier_id] = tier.floor
                        restored.floors[tier.tier_id] = tier.floor
                self._pools[group_id] = restored
        logger.info(f"Loaded {len(pools)} jackpot pool(s)")

    def load_from_store(self, store, group_ids: Iterable[str]):
        self.load_pools(store.load_pools(list(group_ids)))

    def flush(self, store) -> int:
        snapshot = self.snapshot()
        if snapshot:
            store.save_pools(snapshot)
        return len(snapshot)
