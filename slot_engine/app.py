from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

import logging
from pythonjsonlogger import jsonlogger

from slot_engine.config import Config
from slot_engine.services.jackpot_flush_loop import JackpotFlushLoop
from slot_engine.services.jackpot_service import ProgressiveJackpotManager, DEFAULT_TIER_SETTINGS
from slot_engine.services.pool_store import create_pool_store
from slot_engine.services.slot_service import SlotMachineService
from slot_engine.services.wallet import InMemoryWallet
from slot_engine.utils.bonus_round import BonusRoundEngine
from slot_engine.utils.game_catalog import GameCatalog
from slot_engine.utils.game_event_logger import current_spin_id


# Custom Logging Filter for Spin ID
class SpinIdFilter(logging.Filter):
    def filter(self, record):
        record.spin_id = current_spin_id.get()
        return True


def configure_logging(config_class=Config):
    """Installs JSON logging on the package logger, or plain logging in debug mode."""
    logger = logging.getLogger('slot_engine')
    level = getattr(logging, config_class.LOG_LEVEL, logging.INFO)

    if config_class.LOG_JSON and not config_class.DEBUG:
        handler = logging.StreamHandler()
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(spin_id)s %(module)s %(funcName)s %(lineno)d %(message)s'
        )
        handler.setFormatter(formatter)
        handler.addFilter(SpinIdFilter())
        if logger.hasHandlers():
            logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False
    else:
        if not logger.handlers:
            logging.basicConfig(level=logging.DEBUG if config_class.DEBUG else level)
        logger.setLevel(logging.DEBUG if config_class.DEBUG else level)
    return logger


class SlotEngine:
    """Wired engine: catalog, jackpot manager and store, flush loop and slot service."""

    def __init__(self, service, game_catalog, jackpot_manager, store, flush_loop):
        self.service = service
        self.game_catalog = game_catalog
        self.jackpot_manager = jackpot_manager
        self.store = store
        self.flush_loop = flush_loop

    def start(self):
        self.flush_loop.start()
        return self

    def shutdown(self):
        self.flush_loop.stop(final_flush=True)


def create_app(config_class=Config, wallet=None, rng=None, tier_settings=DEFAULT_TIER_SETTINGS,
               store=None, configure_logs=True):
    """
    Application factory. Loads every game variant (a bad variant aborts startup),
    restores saved jackpot pools and prepares the flush loop without starting it.
    """
    logger = configure_logging(config_class) if configure_logs else logging.getLogger('slot_engine')

    game_catalog = GameCatalog(config_class.GAME_CONFIG_DIR, rng=rng)
    jackpot_manager = ProgressiveJackpotManager(tier_settings, rake=config_class.JACKPOT_RAKE, rng=rng)
    store = store if store is not None else create_pool_store(config_class.JACKPOT_STORE_URI)
    jackpot_manager.load_pools(store.load_all())

    bonus_engine = BonusRoundEngine(config_class.TOKEN_SECRET, salt=config_class.TOKEN_SALT, rng=rng)
    service = SlotMachineService(
        game_catalog,
        wallet if wallet is not None else InMemoryWallet(),
        jackpot_manager,
        bonus_engine,
    )
    flush_loop = JackpotFlushLoop(jackpot_manager, store, interval_seconds=config_class.JACKPOT_FLUSH_INTERVAL)

    logger.info(f"Slot engine ready: games={game_catalog.short_names()} store={type(store).__name__}")
    return SlotEngine(service, game_catalog, jackpot_manager, store, flush_loop)
