"""
Configuration validation and startup checks for the slot engine.

Implements fail-fast validation so that production deployments never run
with a development token secret or an unusable jackpot store.
"""

import os
import sys
import warnings
import secrets
from decimal import Decimal, InvalidOperation
from typing import List, Optional


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid."""
    pass


SUPPORTED_STORE_SCHEMES = ('json://', 'sqlite://', 'postgresql://', 'postgresql+psycopg2://')


class ConfigValidator:
    """Validates engine configuration and enforces production security."""

    def __init__(self, is_production: bool = None):
        """
        Initialize the configuration validator.

        Args:
            is_production: If None, auto-detect based on SLOT_ENGINE_ENV
        """
        if is_production is None:
            is_production = os.getenv('SLOT_ENGINE_ENV', 'development').lower() == 'production'

        self.is_production = is_production
        self.is_testing = os.getenv('TESTING', 'False').lower() in ('true', '1', 't')
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_required_env_var(self, var_name: str, description: str = None) -> Optional[str]:
        """
        Validate that a required environment variable is set.

        Returns:
            The environment variable value if set, None otherwise
        """
        value = os.getenv(var_name)
        if not value:
            desc = description or var_name
            if self.is_production:
                self.errors.append(f"CRITICAL: {desc} ({var_name}) must be set in production environment")
            else:
                self.warnings.append(f"WARNING: {desc} ({var_name}) not set - using development fallback")
        return value

    def validate_token_secret(self) -> str:
        """Validate the secret that seals bonus-round continuation tokens."""
        token_secret = self.validate_required_env_var(
            'SLOT_ENGINE_TOKEN_SECRET',
            'Bonus token secret'
        )

        if not token_secret:
            if self.is_production:
                raise ConfigValidationError("SLOT_ENGINE_TOKEN_SECRET is required in production")
            # A random key means tokens do not survive a restart; fine for development.
            token_secret = secrets.token_urlsafe(48)
            warnings.warn(
                "SLOT_ENGINE_TOKEN_SECRET not set. Generated random secret for development. "
                "Bonus tokens will not survive a restart!",
                UserWarning
            )
        elif len(token_secret) < 32:
            error_msg = "SLOT_ENGINE_TOKEN_SECRET must be at least 32 characters long"
            if self.is_production:
                self.errors.append(f"CRITICAL: {error_msg}")
            else:
                self.warnings.append(f"WARNING: {error_msg}")

        return token_secret

    def validate_jackpot_config(self):
        """Validate rake and flush interval."""
        try:
            rake = Decimal(os.getenv('JACKPOT_RAKE', '0.5'))
        except InvalidOperation:
            raise ConfigValidationError("JACKPOT_RAKE must be a decimal number")
        if not (Decimal('0') <= rake <= Decimal('1')):
            self.errors.append("CRITICAL: JACKPOT_RAKE must be between 0 and 1")

        try:
            flush_interval = int(os.getenv('JACKPOT_FLUSH_INTERVAL', '60'))
        except ValueError:
            raise ConfigValidationError("JACKPOT_FLUSH_INTERVAL must be an integer number of seconds")
        if flush_interval <= 0:
            self.errors.append("CRITICAL: JACKPOT_FLUSH_INTERVAL must be positive")

        return rake, flush_interval

    def validate_store_config(self) -> str:
        """Validate where jackpot pools are persisted."""
        store_uri = os.getenv('JACKPOT_STORE_URI')

        if not store_uri:
            if self.is_production:
                self.errors.append(
                    "CRITICAL: JACKPOT_STORE_URI must be set in production "
                    "(json://<directory> or a database URL)"
                )
            else:
                self.warnings.append("JACKPOT_STORE_URI not set - using json://Data for development")
            return 'json://Data'

        if not store_uri.startswith(SUPPORTED_STORE_SCHEMES):
            self.errors.append(
                f"CRITICAL: JACKPOT_STORE_URI must use one of: {', '.join(SUPPORTED_STORE_SCHEMES)}"
            )
        return store_uri

    def validate_all(self) -> dict:
        """
        Validate all configuration settings.

        Returns:
            Dictionary containing validated configuration values

        Raises:
            ConfigValidationError: If critical configuration is missing in production
        """
        config = {}

        try:
            config['TOKEN_SECRET'] = self.validate_token_secret()
            config['JACKPOT_RAKE'], config['JACKPOT_FLUSH_INTERVAL'] = self.validate_jackpot_config()
            config['JACKPOT_STORE_URI'] = self.validate_store_config()

            config['DEBUG'] = os.getenv('SLOT_ENGINE_DEBUG', 'False').lower() in ('true', '1', 't')
            config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO').upper()
            config['LOG_JSON'] = os.getenv('LOG_JSON', 'True').lower() in ('true', '1', 't')

            if config['LOG_LEVEL'] not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
                self.errors.append(f"CRITICAL: LOG_LEVEL '{config['LOG_LEVEL']}' is not a logging level")

            if self.is_production and config['DEBUG']:
                self.errors.append("CRITICAL: DEBUG mode must be disabled in production (set SLOT_ENGINE_DEBUG=False)")

            if self.errors:
                error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in self.errors)
                if self.warnings:
                    error_msg += "\n\nWarnings:\n" + "\n".join(f"  - {warning}" for warning in self.warnings)
                raise ConfigValidationError(error_msg)

            if self.warnings and not self.is_testing:
                for warning in self.warnings:
                    warnings.warn(warning, UserWarning)

            return config

        except Exception as e:
            if isinstance(e, ConfigValidationError):
                raise
            else:
                raise ConfigValidationError(f"Configuration validation error: {str(e)}") from e


def validate_production_config() -> dict:
    """
    Validate configuration with fail-fast behavior.

    Raises:
        SystemExit: If validation fails during startup
    """
    try:
        validator = ConfigValidator()
        return validator.validate_all()
    except ConfigValidationError as e:
        print("\nCONFIGURATION VALIDATION FAILED\n", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("\nHow to fix:", file=sys.stderr)
        print("1. Set required environment variables (see .env.example)", file=sys.stderr)
        print("2. Review JACKPOT_* settings", file=sys.stderr)
        print("\nEngine startup ABORTED\n", file=sys.stderr)

        sys.exit(1)
