from marshmallow import Schema, fields, validate, ValidationError, validates_schema, post_load
from marshmallow.validate import Range, Length


JACKPOT_TIER_IDS = ('mega', 'minor', 'mini')


# --- Bonus round continuation ---
class BonusStateSchema(Schema):
    """Everything needed to resume a mini-game; this is the whole token payload."""
    game = fields.Str(required=True, validate=Length(min=1))
    group_id = fields.Str(required=True, validate=Length(min=1))
    player_id = fields.Str(required=True, validate=Length(min=1))
    spin_id = fields.Str(load_default=None, allow_none=True)
    bet = fields.Decimal(required=True, as_string=True, validate=Range(min=0, min_inclusive=False))
    rows = fields.Int(required=True, strict=True, validate=Range(min=1))
    columns = fields.Int(required=True, strict=True, validate=Range(min=1))
    revealed_columns = fields.List(fields.List(fields.Int(strict=True)), required=True)
    next_column = fields.Int(required=True, strict=True, validate=Range(min=1))

    @validates_schema
    def validate_progress(self, data, **kwargs):
        revealed = data.get('revealed_columns', [])
        columns = data.get('columns')
        rows = data.get('rows')
        next_column = data.get('next_column')
        if columns is None or rows is None or next_column is None:
            return
        if next_column > columns + 1:
            raise ValidationError('next_column is past the last column.', 'next_column')
        if next_column != len(revealed) + 1:
            raise ValidationError('next_column does not follow the revealed columns.', 'next_column')
        for idx, column in enumerate(revealed):
            if len(column) != rows:
                raise ValidationError(f'Revealed column {idx + 1} must hold {rows} symbols.', 'revealed_columns')

    @post_load
    def make_state(self, data, **kwargs):
        from slot_engine.utils.bonus_round import BonusState
        return BonusState(**data)


# --- Jackpot pools ---
class JackpotTierSchema(Schema):
    tier = fields.Str(required=True, validate=validate.OneOf(JACKPOT_TIER_IDS))
    value = fields.Decimal(required=True, as_string=True, validate=Range(min=0))
    floor = fields.Decimal(required=True, as_string=True, validate=Range(min=0))


class JackpotPoolSchema(Schema):
    group_id = fields.Str(required=True, validate=Length(min=1))
    tiers = fields.List(fields.Nested(JackpotTierSchema), required=True, validate=Length(min=1))
    updated_at = fields.DateTime(load_default=None, allow_none=True)

    @validates_schema
    def validate_unique_tiers(self, data, **kwargs):
        tier_ids = [t['tier'] for t in data.get('tiers', [])]
        if len(tier_ids) != len(set(tier_ids)):
            raise ValidationError('Each tier may appear only once per pool.', 'tiers')


# --- Settlement output ---
class WinLineSchema(Schema):
    line_id = fields.Raw(required=True)
    symbol_id = fields.Int(required=True)
    count = fields.Int(required=True)
    positions = fields.List(fields.List(fields.Int()))
    multiplier = fields.Decimal(as_string=True)
    type = fields.Str(validate=validate.OneOf(['payline', 'scatter']))


class JackpotHitSchema(Schema):
    tier = fields.Str()
    amount = fields.Decimal(as_string=True)


class BonusProgressSchema(Schema):
    token = fields.Str(allow_none=True)
    status = fields.Str(validate=validate.OneOf(['awaiting_column', 'complete']))
    next_column = fields.Int(allow_none=True)
    revealed_columns = fields.List(fields.List(fields.Int()))
    display_grid = fields.Str()
    bonus_symbol_count = fields.Int()
    multiplier = fields.Decimal(as_string=True, allow_none=True)
    payout = fields.Decimal(as_string=True, allow_none=True)


class SpinResultSchema(Schema):
    success = fields.Bool()
    spin_id = fields.Str()
    game = fields.Str()
    group_id = fields.Str()
    player_id = fields.Str()
    bet = fields.Decimal(as_string=True)
    grid = fields.List(fields.List(fields.Int()))
    display_grid = fields.Str()
    total_multiplier = fields.Decimal(as_string=True)
    payout = fields.Decimal(as_string=True)
    winning_lines = fields.List(fields.Nested(WinLineSchema))
    breakdown_text = fields.Str()
    jackpot = fields.Nested(JackpotHitSchema, allow_none=True)
    bonus = fields.Nested(BonusProgressSchema, allow_none=True)
    balance = fields.Decimal(as_string=True, allow_none=True)
