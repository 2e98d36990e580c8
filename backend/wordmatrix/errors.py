"""Error taxonomy shared by the orchestrator, socket handlers and routes."""


class GameError(Exception):
    code = 'GAME_ERROR'
    status = 400

    def __init__(self, message=None, code=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code

    def to_dict(self):
        return {'errorCode': self.code, 'message': self.message}


class NotFound(GameError):
    code = 'ROOM_NOT_FOUND'
    status = 404


class Unauthorized(GameError):
    code = 'UNAUTHORIZED'
    status = 403


class InvalidInput(GameError):
    code = 'INVALID_INPUT'
    status = 400


class RoundClosed(InvalidInput):
    code = 'ROUND_CLOSED'


class AlreadySubmitted(GameError):
    code = 'ALREADY_SUBMITTED'
    status = 409


class StoreUnavailable(GameError):
    code = 'STORE_UNAVAILABLE'
    status = 503
