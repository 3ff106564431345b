class ErrorCodes:
    CONFIGURATION_ERROR = "BE_GEN_004"

    INVALID_WAGER = "BE_SLOT_001"
    GAME_NOT_FOUND = "BE_SLOT_002"
    INVALID_BONUS_STATE = "BE_SLOT_004"

    PERSISTENCE_ERROR = "BE_JACKPOT_001"
