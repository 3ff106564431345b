"""
Mini-game bonus round driven entirely by continuation tokens.

There is no server-side session for a bonus round in progress. After every
step the full ``BonusState`` is serialized, sealed with Fernet and handed back
to the caller; the next step must present that token. Decoding is fallible and
every failure surfaces as ``InvalidBonusStateException``.

States: ``awaiting_column`` (next_column = 1..columns) and ``complete``
(next_column = columns + 1). The bet is captured when the round triggers and
is never re-read afterwards.
"""
import json
import logging
import secrets
from decimal import Decimal

from cryptography.fernet import InvalidToken
from marshmallow import ValidationError

from slot_engine.exceptions import InvalidBonusStateException
from slot_engine.schemas import BonusStateSchema
from slot_engine.utils.encryption import seal_payload, open_payload, DEFAULT_SALT
from slot_engine.utils.spin_handler import get_step_payout

logger = logging.getLogger(__name__)

STATUS_AWAITING_COLUMN = 'awaiting_column'
STATUS_COMPLETE = 'complete'


class BonusState:
    def __init__(self, game, group_id, player_id, bet, rows, columns,
                 revealed_columns=None, next_column=1, spin_id=None):
        self.game = game
        self.group_id = group_id
        self.player_id = player_id
        self.spin_id = spin_id
        self.bet = Decimal(str(bet))
        self.rows = rows
        self.columns = columns
        self.revealed_columns = [list(col) for col in (revealed_columns or [])]
        self.next_column = next_column

    @property
    def status(self):
        return STATUS_COMPLETE if self.next_column > self.columns else STATUS_AWAITING_COLUMN

    @property
    def is_complete(self):
        return self.status == STATUS_COMPLETE

    def to_dict(self):
        return BonusStateSchema().dump(self)

    def __eq__(self, other):
        if not isinstance(other, BonusState):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"<BonusState {self.game} group={self.group_id} player={self.player_id} "
                f"{self.status} next={self.next_column}/{self.columns}>")


class BonusRoundEngine:
    """Starts, advances, seals and settles mini-game rounds."""

    def __init__(self, secret, salt=DEFAULT_SALT, rng=None):
        if not secret:
            raise ValueError("A token secret is required to seal bonus state.")
        self.secret = secret
        self.salt = salt
        self.rng = rng if rng is not None else secrets.SystemRandom()
        self.schema = BonusStateSchema()

    # --- State machine ---
    def start(self, catalog, group_id, player_id, bet, spin_id=None):
        """Creates the initial ``awaiting_column`` state for column 1."""
        if not catalog.bonus_config:
            raise InvalidBonusStateException(f"Game '{catalog.short_name}' has no bonus round.")
        return BonusState(
            game=catalog.short_name, group_id=group_id, player_id=player_id,
            bet=bet, rows=catalog.rows, columns=catalog.columns,
            revealed_columns=[], next_column=1, spin_id=spin_id,
        )

    def draw_bonus_column(self, catalog):
        """
        Draws one fresh column for the reveal. Each cell is the bonus symbol with the
        configured boost chance, otherwise a uniformly chosen non-special symbol.
        """
        boost_chance = float(catalog.bonus_config['boost_chance'])
        column = []
        for _ in range(catalog.rows):
            if self.rng.random() < boost_chance:
                column.append(catalog.bonus_symbol_id)
            else:
                column.append(self.rng.choice(catalog.non_special_symbol_ids))
        return column

    def reveal_next_column(self, state, catalog):
        """Returns the state after revealing ``state.next_column``; the input is not modified."""
        if state.is_complete:
            raise InvalidBonusStateException(
                "Bonus round is already complete.",
                details={'next_column': state.next_column, 'columns': state.columns}
            )
        column = self.draw_bonus_column(catalog)
        return BonusState(
            game=state.game, group_id=state.group_id, player_id=state.player_id,
            bet=state.bet, rows=state.rows, columns=state.columns,
            revealed_columns=state.revealed_columns + [column],
            next_column=state.next_column + 1, spin_id=state.spin_id,
        )

    # --- Scoring ---
    def count_bonus_symbols(self, state, catalog):
        return sum(1 for column in state.revealed_columns for s_id in column if s_id == catalog.bonus_symbol_id)

    def calculate_payout(self, state, catalog):
        """Scores a complete round against the tier table, times the bet captured at trigger."""
        if not state.is_complete:
            raise InvalidBonusStateException("Bonus round is not complete yet.")
        bonus_symbol_count = self.count_bonus_symbols(state, catalog)
        multiplier = get_step_payout(catalog.bonus_config['payout_tiers'], bonus_symbol_count)
        return {
            'bonus_symbol_count': bonus_symbol_count,
            'multiplier': multiplier,
            'payout': state.bet * multiplier,
        }

    def view_grid(self, state, catalog):
        """Row-major grid with unrevealed columns shown as the placeholder symbol."""
        placeholder = catalog.placeholder_symbol_id
        grid = []
        for r in range(state.rows):
            row = []
            for c in range(state.columns):
                if c < len(state.revealed_columns):
                    row.append(state.revealed_columns[c][r])
                else:
                    row.append(placeholder)
            grid.append(row)
        return grid

    # --- Continuation token ---
    def encode_token(self, state):
        payload = json.dumps(self.schema.dump(state), separators=(',', ':'), sort_keys=True)
        return seal_payload(payload.encode('utf-8'), self.secret, self.salt)

    def decode_token(self, token):
        """
        Opens and validates a continuation token.

        Raises:
            InvalidBonusStateException: On tampered, truncated or foreign tokens,
                malformed payloads, or inconsistent progress.
        """
        try:
            payload = open_payload(token, self.secret, self.salt)
            data = json.loads(payload.decode('utf-8'))
            return self.schema.load(data)
        except InvalidToken:
            raise InvalidBonusStateException("Bonus token could not be verified.") from None
        except (UnicodeDecodeError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            raise InvalidBonusStateException("Bonus token payload is unreadable.") from e
        except ValidationError as e:
            raise InvalidBonusStateException(
                "Bonus token payload is inconsistent.", details={'errors': e.messages}
            ) from e

    def check_state(self, state, catalog, group_id, player_id):
        """Ensures a decoded state belongs to this caller and fits the game variant."""
        if state.group_id != group_id or state.player_id != player_id:
            raise InvalidBonusStateException(
                "Bonus token belongs to another player.",
                details={'group_id': group_id, 'player_id': player_id}
            )
        if state.game != catalog.short_name:
            raise InvalidBonusStateException(f"Bonus token is not for game '{catalog.short_name}'.")
        if state.rows != catalog.rows or state.columns != catalog.columns:
            raise InvalidBonusStateException(
                "Bonus token dimensions do not match the game.",
                details={'rows': state.rows, 'columns': state.columns}
            )
        allowed = set(catalog.non_special_symbol_ids) | {catalog.bonus_symbol_id}
        for column in state.revealed_columns:
            for s_id in column:
                if s_id not in allowed:
                    raise InvalidBonusStateException(f"Bonus token holds unknown symbol {s_id}.")
        return state
