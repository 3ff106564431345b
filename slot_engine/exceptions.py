from slot_engine.error_codes import ErrorCodes

class AppException(Exception):
    def __init__(self, error_code, status_message, status_code, details=None):
        super().__init__(status_message)
        self.error_code = error_code
        self.status_message = status_message
        self.status_code = status_code
        self.details = details if details is not None else {}

    def to_result(self):
        """Flatten into the error result dict handed back to callers."""
        return {
            'success': False,
            'error_code': self.error_code,
            'message': self.status_message,
            'status_code': self.status_code,
            'details': self.details,
        }

class ConfigurationException(AppException):
    def __init__(self, status_message="Game configuration is invalid", details=None):
        super().__init__(
            error_code=ErrorCodes.CONFIGURATION_ERROR,
            status_message=status_message,
            status_code=500,
            details=details
        )

class InvalidWagerException(AppException):
    def __init__(self, status_message="Wager must be a positive amount", details=None):
        super().__init__(
            error_code=ErrorCodes.INVALID_WAGER,
            status_message=status_message,
            status_code=422,
            details=details
        )

class GameNotFoundException(AppException):
    def __init__(self, status_message="Game not found", details=None):
        super().__init__(
            error_code=ErrorCodes.GAME_NOT_FOUND,
            status_message=status_message,
            status_code=404,
            details=details
        )

class InvalidBonusStateException(AppException):
    def __init__(self, status_message="Bonus round state is stale or invalid", details=None):
        super().__init__(
            error_code=ErrorCodes.INVALID_BONUS_STATE,
            status_message=status_message,
            status_code=409,
            details=details
        )

class PersistenceException(AppException):
    def __init__(self, status_message="Jackpot pool persistence failed", details=None):
        super().__init__(
            error_code=ErrorCodes.PERSISTENCE_ERROR,
            status_message=status_message,
            status_code=500,
            details=details
        )
