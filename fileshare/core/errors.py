# fileshare/core/errors.py


class FileShareError(Exception):
    """Base class for errors that map onto an HTTP response.

    ``message`` is shown to the caller as-is, so it must never contain
    storage paths or other internals.
    """

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(FileShareError):
    status_code = 400
    default_message = "Invalid request"


class PayloadTooLarge(FileShareError):
    status_code = 413
    default_message = "File exceeds maximum allowed size"


class NotFound(FileShareError):
    status_code = 404
    default_message = "File not found"


class Gone(FileShareError):
    status_code = 410
    default_message = "Link expired"


class InternalError(FileShareError):
    status_code = 500
    default_message = "Internal server error"


class RecordExistsError(Exception):
    """A metadata record with this id is already committed."""


class CorruptRecordError(Exception):
    """A metadata file exists but cannot be read as an ObjectRecord."""
