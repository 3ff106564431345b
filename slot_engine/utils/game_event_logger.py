"""
Game Event Logging System
Structured audit trail for spins, bonus steps, jackpot hits and wallet movements
"""

import contextvars
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal

logger = logging.getLogger('slot_engine.events')

# Spin id of the call being processed; stamped onto every log record by SpinIdFilter
current_spin_id = contextvars.ContextVar('current_spin_id', default='N/A')


def _amount(value):
    return str(value) if isinstance(value, Decimal) else value


class GameEventLogger:
    """Centralized game event logging"""

    @staticmethod
    def _base_event(event_type: str, sub_type: str, group_id=None, player_id=None, details: dict = None):
        return {
            'event_type': event_type,
            'sub_type': sub_type,
            'group_id': group_id,
            'player_id': player_id,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'spin_id': current_spin_id.get(),
            'details': details or {}
        }

    @staticmethod
    def log_game_event(event_type: str, group_id, player_id, game_type: str = None,
                       bet_amount: Decimal = None, win_amount: Decimal = None,
                       multiplier: Decimal = None, details: dict = None):
        """Log spin and bonus-round events"""
        event_data = GameEventLogger._base_event('game', event_type, group_id, player_id, details)
        event_data.update({
            'game_type': game_type,
            'bet_amount': _amount(bet_amount),
            'win_amount': _amount(win_amount),
            'multiplier': _amount(multiplier),
        })
        logger.info(f"GAME_EVENT: {json.dumps(event_data, default=str)}")

    @staticmethod
    def log_jackpot_event(event_type: str, group_id, player_id=None, tier: str = None,
                          amount: Decimal = None, details: dict = None):
        """Log jackpot hits and pool lifecycle events"""
        event_data = GameEventLogger._base_event('jackpot', event_type, group_id, player_id, details)
        event_data.update({'tier': tier, 'amount': _amount(amount)})
        level = logging.WARNING if event_type == 'hit' else logging.INFO
        logger.log(level, f"JACKPOT_EVENT: {json.dumps(event_data, default=str)}")

    @staticmethod
    def log_financial_event(event_type: str, group_id, player_id, amount: Decimal = None,
                            balance_after: Decimal = None, details: dict = None):
        """Log wallet debits and credits made on behalf of a spin"""
        event_data = GameEventLogger._base_event('financial', event_type, group_id, player_id, details)
        event_data.update({'amount': _amount(amount), 'balance_after': _amount(balance_after)})
        logger.info(f"FINANCIAL_EVENT: {json.dumps(event_data, default=str)}")

    @staticmethod
    def log_security_event(event_type: str, severity: str = 'medium', group_id=None, player_id=None,
                           details: dict = None):
        """Log rejected tokens and other suspicious input"""
        event_data = GameEventLogger._base_event('security', event_type, group_id, player_id, details)
        event_data['severity'] = severity
        level = logging.ERROR if severity == 'high' else logging.WARNING
        logger.log(level, f"SECURITY_EVENT: {json.dumps(event_data, default=str)}")
