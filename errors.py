class ParseError(ValueError):
    """A single statement row or block could not be read."""


class SplitValidationError(ValueError):
    pass


class StateConflictError(ValueError):
    """The requested operation conflicts with the derived invoice state."""


class PersistenceError(RuntimeError):
    pass
