"""
Typed errors raised by the tournament engine.

Every error carries an HTTP-style status code and a short machine code so the
web layer can map it to a response without inspecting messages.
"""


class TournamentError(Exception):
    """Base class for all tournament engine errors."""
    status_code = 400
    code = 'tournament_error'

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self):
        payload = {'message': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(TournamentError):
    """Malformed input, missing required fields, or unsupported options."""
    status_code = 400
    code = 'validation_error'


class CapacityError(ValidationError):
    """A pool would exceed its required team count."""
    code = 'pool_capacity'


class DuplicateMembershipError(ValidationError):
    """A team would belong to two pools of the same stage."""
    code = 'duplicate_membership'


class IncompleteResultError(TournamentError):
    """Set scores do not resolve to a best-of-3 winner."""
    status_code = 400
    code = 'incomplete_result'


class ConflictError(TournamentError):
    """The operation conflicts with existing state (already generated, already final)."""
    status_code = 409
    code = 'conflict'


class NotFoundError(TournamentError):
    """Resource missing or not accessible to the caller."""
    status_code = 404
    code = 'not_found'
