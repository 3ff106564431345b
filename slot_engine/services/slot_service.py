"""
Slot Machine Service
Runs one spin or one bonus step end to end: wallet debit, grid, evaluation,
bonus escalation, jackpot test and settlement.
"""

import logging
import uuid
from decimal import Decimal, InvalidOperation

from slot_engine.exceptions import AppException, InvalidWagerException, InvalidBonusStateException
from slot_engine.utils.bonus_round import STATUS_COMPLETE
from slot_engine.utils.game_event_logger import GameEventLogger, current_spin_id
from slot_engine.utils.spin_handler import generate_spin_grid, calculate_win, check_bonus_trigger

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


class SlotMachineService:

    def __init__(self, game_catalog, wallet, jackpot_manager, bonus_engine):
        self.game_catalog = game_catalog
        self.wallet = wallet
        self.jackpot_manager = jackpot_manager
        self.bonus_engine = bonus_engine

    # --- Spins ---
    def spin(self, group_id, player_id, game, bet) -> dict:
        """
        Plays one paid spin. The bet is assumed validated by the caller; a non-positive
        bet is still rejected before anything is debited.

        Returns:
            dict: Settlement result, or an error result (``success`` False) carrying
            ``bet_debited`` so the caller can decide on a refund.
        """
        group_id, player_id = str(group_id), str(player_id)
        spin_id = uuid.uuid4().hex
        ctx_token = current_spin_id.set(spin_id)
        bet_debited = False
        try:
            catalog = self.game_catalog.get(game)
            try:
                bet = Decimal(str(bet))
            except InvalidOperation:
                raise InvalidWagerException(details={'bet': str(bet)}) from None
            if not bet.is_finite() or bet <= 0:
                raise InvalidWagerException(details={'bet': str(bet)})

            balance = self.wallet.debit(group_id, player_id, bet)
            bet_debited = True
            GameEventLogger.log_financial_event('spin_debit', group_id, player_id, amount=bet, balance_after=balance)

            grid = generate_spin_grid(catalog.rows, catalog.columns, catalog.sampler)
            win_info = calculate_win(grid, catalog)
            bonus_trigger = check_bonus_trigger(grid, catalog)

            bonus = None
            if bonus_trigger['triggered']:
                # The bonus round's payout replaces this grid's line payout
                payout = ZERO
                state = self.bonus_engine.start(catalog, group_id, player_id, bet, spin_id=spin_id)
                bonus = self._bonus_view(state, catalog, token=self.bonus_engine.encode_token(state))
                logger.info(f"Spin {spin_id} triggered {bonus_trigger['type']} on {catalog.short_name}")
            else:
                payout = bet * win_info['total_multiplier']

            jackpot_result = self.jackpot_manager.process_wager(group_id, bet, player_id=player_id)
            jackpot = None
            if jackpot_result['hit']:
                jackpot = {'tier': jackpot_result['tier'], 'amount': jackpot_result['amount']}

            total_credit = payout + (jackpot['amount'] if jackpot else ZERO)
            if total_credit > 0:
                balance = self.wallet.credit(group_id, player_id, total_credit)
                GameEventLogger.log_financial_event('spin_credit', group_id, player_id,
                                                    amount=total_credit, balance_after=balance)

            GameEventLogger.log_game_event(
                'spin', group_id, player_id, game_type=catalog.short_name, bet_amount=bet,
                win_amount=total_credit, multiplier=win_info['total_multiplier'],
                details={'bonus_triggered': bonus_trigger['triggered'],
                         'jackpot_tier': jackpot['tier'] if jackpot else None}
            )

            return {
                'success': True,
                'spin_id': spin_id,
                'game': catalog.short_name,
                'group_id': group_id,
                'player_id': player_id,
                'bet': bet,
                'grid': grid,
                'display_grid': catalog.render_grid(grid),
                'total_multiplier': win_info['total_multiplier'],
                'payout': payout,
                'winning_lines': win_info['winning_lines'],
                'breakdown_text': win_info['breakdown_text'],
                'jackpot': jackpot,
                'bonus': bonus,
                'balance': balance,
            }
        except AppException as e:
            logger.warning(f"Spin {spin_id} failed: {e.error_code} {e.status_message}")
            result = e.to_result()
            result.update({'spin_id': spin_id, 'bet_debited': bet_debited})
            return result
        finally:
            current_spin_id.reset(ctx_token)

    # --- Bonus round ---
    def reveal_bonus_column(self, group_id, player_id, token) -> dict:
        """
        Reveals the next mini-game column for a continuation token. A stale or foreign
        token yields an error result and touches neither wallet nor jackpot. Tokens do
        not expire and are not single-use: replaying the final-step token reveals and
        credits the bonus payout again, so callers must retire a token once it is used.
        """
        group_id, player_id = str(group_id), str(player_id)
        try:
            state = self.bonus_engine.decode_token(token)
            if state.game not in self.game_catalog:
                raise InvalidBonusStateException(f"Bonus token references unknown game '{state.game}'.")
            catalog = self.game_catalog.get(state.game)
            self.bonus_engine.check_state(state, catalog, group_id, player_id)
        except InvalidBonusStateException as e:
            GameEventLogger.log_security_event('invalid_bonus_token', group_id=group_id, player_id=player_id,
                                               details={'reason': e.status_message})
            return e.to_result()

        ctx_token = current_spin_id.set(state.spin_id or 'N/A')
        try:
            new_state = self.bonus_engine.reveal_next_column(state, catalog)

            if new_state.status == STATUS_COMPLETE:
                settlement = self.bonus_engine.calculate_payout(new_state, catalog)
                payout = settlement['payout']
                balance = self.wallet.get_balance(group_id, player_id)
                if payout > 0:
                    balance = self.wallet.credit(group_id, player_id, payout)
                    GameEventLogger.log_financial_event('bonus_credit', group_id, player_id,
                                                        amount=payout, balance_after=balance)
                bonus = self._bonus_view(new_state, catalog, token=None, settlement=settlement)
                GameEventLogger.log_game_event(
                    'bonus_complete', group_id, player_id, game_type=catalog.short_name,
                    bet_amount=new_state.bet, win_amount=payout, multiplier=settlement['multiplier'],
                    details={'bonus_symbol_count': settlement['bonus_symbol_count']}
                )
            else:
                payout = ZERO
                balance = self.wallet.get_balance(group_id, player_id)
                bonus = self._bonus_view(new_state, catalog, token=self.bonus_engine.encode_token(new_state))
                GameEventLogger.log_game_event(
                    'bonus_reveal', group_id, player_id, game_type=catalog.short_name,
                    bet_amount=new_state.bet, details={'next_column': new_state.next_column}
                )

            return {
                'success': True,
                'spin_id': new_state.spin_id,
                'game': catalog.short_name,
                'group_id': group_id,
                'player_id': player_id,
                'bet': new_state.bet,
                'payout': payout,
                'bonus': bonus,
                'balance': balance,
            }
        except AppException as e:
            logger.warning(f"Bonus step failed: {e.error_code} {e.status_message}")
            return e.to_result()
        finally:
            current_spin_id.reset(ctx_token)

    def _bonus_view(self, state, catalog, token, settlement=None):
        view = {
            'token': token,
            'status': state.status,
            'next_column': None if state.is_complete else state.next_column,
            'revealed_columns': [list(col) for col in state.revealed_columns],
            'display_grid': catalog.render_grid(self.bonus_engine.view_grid(state, catalog)),
            'bonus_symbol_count': self.bonus_engine.count_bonus_symbols(state, catalog),
            'multiplier': None,
            'payout': None,
        }
        if settlement:
            view['multiplier'] = settlement['multiplier']
            view['payout'] = settlement['payout']
        return view

    # --- Jackpots ---
    def get_jackpots(self, group_id) -> dict:
        pool = self.jackpot_manager.get_pool(str(group_id))
        return {'group_id': pool.group_id, 'meters': dict(pool.meters), 'floors': dict(pool.floors)}
