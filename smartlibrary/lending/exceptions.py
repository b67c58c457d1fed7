class LibraryError(ValueError):
    """Base class for errors raised by the book-request lifecycle.

    Carries the HTTP status the JSON error handler should answer with.
    """

    status_code = 400

    def __init__(self, message, *, status_code=None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code

    @property
    def message(self):
        return str(self)


class ValidationError(LibraryError):
    status_code = 400


class NotFoundError(LibraryError):
    status_code = 404


class InvalidState(LibraryError):
    status_code = 400


class Unavailable(LibraryError):
    status_code = 400


class PersistenceError(LibraryError):
    status_code = 500
