from typing import Optional


class GameError(Exception):
    """Base class for every recoverable failure raised by the game core.

    ``category`` is a stable machine-readable tag that the socket layer
    forwards to clients next to the human readable message.
    """

    category = 'game_error'

    def __init__(self, message: str, category: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if category:
            self.category = category

    def to_dict(self):
        return {'message': self.message, 'code': self.category}


class ValidationError(GameError):
    category = 'invalid'


class PlacementError(ValidationError):
    category = 'invalid_placement'


class StateConflictError(GameError):
    category = 'conflict'


class RoomNotFoundError(StateConflictError):
    category = 'room_not_found'

    def __init__(self, message: str = 'Room not found'):
        super().__init__(message)


class RoomCodeTakenError(StateConflictError):
    category = 'room_code_taken'


class ResourceExhaustedError(GameError):
    category = 'resource_exhausted'
