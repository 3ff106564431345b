"""
Jackpot pool persistence.

Two stores share one contract: ``load_pools(group_ids)`` returns the pools that
exist for those groups, ``save_pools(pools)`` writes every given pool. Amounts
are stored as decimal strings so meters and floors round-trip exactly.
"""

import base64
import binascii
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, List

from marshmallow import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slot_engine.exceptions import PersistenceException
from slot_engine.models import Base, JackpotPoolRecord
from slot_engine.schemas import JackpotPoolSchema, JackpotTierSchema
from slot_engine.services.jackpot_service import JackpotPool

logger = logging.getLogger(__name__)

GROUP_ID_PATTERN = re.compile(r'^[A-Za-z0-9_.-]{1,64}$')
ENCODED_DIR_PREFIX = '~'


def group_dir_name(group_id: str) -> str:
    """
    Directory name for a group. Plain ids are used as-is; anything else
    (separators, colons, '.', '..', empty or overlong ids) is stored as
    ``~<urlsafe base64>``, which can never collide with a plain id.
    """
    if group_id not in ('.', '..') and GROUP_ID_PATTERN.match(group_id):
        return group_id
    encoded = base64.urlsafe_b64encode(group_id.encode('utf-8')).decode('ascii').rstrip('=')
    return ENCODED_DIR_PREFIX + encoded


def group_id_from_dir_name(name: str):
    """Inverse of ``group_dir_name``; None for names it never produces."""
    if not name.startswith(ENCODED_DIR_PREFIX):
        if name in ('.', '..') or not GROUP_ID_PATTERN.match(name):
            return None
        return name
    encoded = name[len(ENCODED_DIR_PREFIX):]
    try:
        group_id = base64.urlsafe_b64decode(encoded + '=' * (-len(encoded) % 4)).decode('utf-8')
    except (binascii.Error, ValueError):
        return None
    if group_dir_name(group_id) != name:
        return None
    return group_id


class BasePoolStore(ABC):

    @abstractmethod
    def load_pools(self, group_ids: List[str]) -> Dict[str, JackpotPool]:
        """Pools for the requested groups; groups without a saved pool are absent."""

    @abstractmethod
    def save_pools(self, pools: Dict[str, JackpotPool]) -> None:
        """Writes every pool, replacing any previous record for the group."""

    @abstractmethod
    def discover_groups(self) -> List[str]:
        """Every group with a saved pool."""

    def load_all(self) -> Dict[str, JackpotPool]:
        return self.load_pools(self.discover_groups())


class JsonFilePoolStore(BasePoolStore):
    """One ``<root>/<group_id>/jackpots.json`` file per group."""

    FILE_NAME = 'jackpots.json'

    def __init__(self, root_dir: str):
        self.root_dir = root_dir
        self.schema = JackpotPoolSchema()

    def _path_for(self, group_id: str) -> str:
        return os.path.join(self.root_dir, group_dir_name(group_id), self.FILE_NAME)

    def discover_groups(self) -> List[str]:
        if not os.path.isdir(self.root_dir):
            return []
        groups = []
        for entry in os.listdir(self.root_dir):
            if not os.path.isfile(os.path.join(self.root_dir, entry, self.FILE_NAME)):
                continue
            group_id = group_id_from_dir_name(entry)
            if group_id is None:
                logger.warning(f"Ignoring jackpot directory with unrecognised name: {entry}")
                continue
            groups.append(group_id)
        return sorted(groups)

    def load_pools(self, group_ids: List[str]) -> Dict[str, JackpotPool]:
        pools = {}
        for group_id in group_ids:
            path = self._path_for(group_id)
            if not os.path.exists(path):
                continue
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = self.schema.load(json.load(f))
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error(f"Failed to load jackpot pool for group {group_id} from {path}: {e}")
                raise PersistenceException(
                    f"Could not load jackpot pool for group '{group_id}'", details={'path': path}
                ) from e
            if data['group_id'] != group_id:
                raise PersistenceException(
                    f"Jackpot file for group '{group_id}' belongs to '{data['group_id']}'", details={'path': path}
                )
            pools[group_id] = JackpotPool.from_dict(data)
        return pools

    def save_pools(self, pools: Dict[str, JackpotPool]) -> None:
        """Writes each pool independently; one failing group does not stop the rest."""
        failed = []
        for group_id, pool in pools.items():
            path = self._path_for(group_id)
            directory = os.path.dirname(path)
            try:
                os.makedirs(directory, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.jackpots-', suffix='.tmp')
                try:
                    with os.fdopen(fd, 'w', encoding='utf-8') as f:
                        json.dump(self.schema.dump(pool.to_dict()), f, indent=2)
                    os.replace(tmp_path, path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.remove(tmp_path)
                    raise
            except OSError as e:
                logger.error(f"Failed to save jackpot pool for group {group_id} to {path}: {e}")
                failed.append(group_id)
        if failed:
            raise PersistenceException(
                f"Could not save jackpot pools for {len(failed)} group(s)",
                details={'failed_groups': failed, 'saved': len(pools) - len(failed)},
            )
        logger.debug(f"Saved {len(pools)} jackpot pool(s) under {self.root_dir}")


class SqlAlchemyPoolStore(BasePoolStore):
    """Pools in the ``jackpot_pool`` table, tiers in a JSON column."""

    def __init__(self, database_uri: str = None, engine=None):
        if engine is None:
            if database_uri in ('sqlite://', 'sqlite:///:memory:'):
                # One shared connection, otherwise every session sees an empty database
                engine = create_engine(database_uri, connect_args={'check_same_thread': False},
                                       poolclass=StaticPool)
            else:
                engine = create_engine(database_uri)
        self.engine = engine
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.tier_schema = JackpotTierSchema(many=True)

    def discover_groups(self) -> List[str]:
        try:
            with self.Session() as session:
                return list(session.scalars(select(JackpotPoolRecord.group_id).order_by(JackpotPoolRecord.group_id)))
        except SQLAlchemyError as e:
            logger.error(f"Failed to list jackpot pool groups: {e}")
            raise PersistenceException("Could not list jackpot pools in database") from e

    def load_pools(self, group_ids: List[str]) -> Dict[str, JackpotPool]:
        if not group_ids:
            return {}
        try:
            with self.Session() as session:
                records = session.scalars(
                    select(JackpotPoolRecord).filter(JackpotPoolRecord.group_id.in_(list(group_ids)))
                ).all()
                pools = {}
                for record in records:
                    tiers = self.tier_schema.load(record.tiers)
                    pools[record.group_id] = JackpotPool.from_dict({
                        'group_id': record.group_id,
                        'tiers': tiers,
                        'updated_at': record.updated_at,
                    })
                return pools
        except (SQLAlchemyError, ValidationError) as e:
            logger.error(f"Failed to load jackpot pools: {e}")
            raise PersistenceException("Could not load jackpot pools from database") from e

    def save_pools(self, pools: Dict[str, JackpotPool]) -> None:
        if not pools:
            return
        session = self.Session()
        try:
            existing = {
                record.group_id: record
                for record in session.scalars(
                    select(JackpotPoolRecord).filter(JackpotPoolRecord.group_id.in_(list(pools)))
                )
            }
            for group_id, pool in pools.items():
                tiers = self.tier_schema.dump(pool.to_dict()['tiers'])
                record = existing.get(group_id)
                if record is None:
                    record = JackpotPoolRecord(group_id=group_id, tiers=tiers)
                    if pool.updated_at is not None:
                        record.updated_at = pool.updated_at
                    session.add(record)
                else:
                    record.tiers = tiers
                    if pool.updated_at is not None:
                        record.updated_at = pool.updated_at
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to save jackpot pools: {e}")
            raise PersistenceException("Could not save jackpot pools to database") from e
        finally:
            session.close()


def create_pool_store(store_uri: str) -> BasePoolStore:
    """``json://<directory>`` selects the file store; anything else is a database URL."""
    if store_uri.startswith('json://'):
        return JsonFilePoolStore(store_uri[len('json://'):] or '.')
    return SqlAlchemyPoolStore(store_uri)
