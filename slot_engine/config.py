"""
Engine configuration with fail-fast validation.

Values come from the environment (optionally a .env file) and are validated
once at import time. Production deployments must provide all required values.
"""
import os
from dotenv import load_dotenv

load_dotenv()

from slot_engine.config_validator import validate_production_config

class Config:
    """Production-ready configuration with fail-fast validation."""

    _validated_config = validate_production_config()

    # Bonus continuation tokens are sealed with a key derived from this secret
    TOKEN_SECRET = _validated_config['TOKEN_SECRET']
    TOKEN_SALT = b'slot_engine_bonus_token_salt_v1'

    # Progressive jackpot
    JACKPOT_RAKE = _validated_config['JACKPOT_RAKE']
    JACKPOT_FLUSH_INTERVAL = _validated_config['JACKPOT_FLUSH_INTERVAL']
    JACKPOT_STORE_URI = _validated_config['JACKPOT_STORE_URI']

    # Game variants shipped with the package
    GAME_CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'game_configs')

    DEBUG = _validated_config['DEBUG']
    LOG_LEVEL = _validated_config['LOG_LEVEL']
    LOG_JSON = _validated_config['LOG_JSON']


class TestingConfig(Config):
    TESTING = True
    TOKEN_SECRET = 'test-bonus-token-secret-0123456789abcdef'
    JACKPOT_STORE_URI = 'sqlite:///:memory:'
    JACKPOT_FLUSH_INTERVAL = 1
    LOG_JSON = False
    LOG_LEVEL = 'DEBUG'
