"""Exception hierarchy for the connectivity layer.

The core raises these; the command surface in :mod:`easysql.service` turns
them into explicit result objects so callers never handle exceptions.
"""

from sqlalchemy.exc import DBAPIError


class EasySQLError(Exception):
    """Base class for all easysql errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DatabaseConnectionError(EasySQLError):
    """Dialing or authenticating against the database failed."""

    def __str__(self) -> str:
        return f"Connection failed: {self.message}"


class QueryError(EasySQLError):
    """A statement (including the connectivity probe) failed."""

    def __str__(self) -> str:
        return f"Query failed: {self.message}"


class NotConnectedError(EasySQLError):
    """No live session is registered under the requested id."""

    def __init__(self, session_id: str = ""):
        super().__init__("Not connected")
        self.session_id = session_id


class UnsupportedTypeError(EasySQLError):
    """The engine kind named in a config is not one we know how to drive."""

    def __init__(self, db_type: str):
        super().__init__(db_type)
        self.db_type = db_type

    def __str__(self) -> str:
        return f"Unsupported database type: {self.db_type}"


class SSHTunnelError(EasySQLError):
    """The SSH tunnel could not be bound, connected or authenticated."""

    def __str__(self) -> str:
        return f"SSH tunnel error: {self.message}"


def describe_error(exc: BaseException) -> str:
    """Render a driver exception as a single line of text.

    SQLAlchemy wraps DBAPI errors and appends a background link; the
    wrapped driver exception carries the message users care about.
    """
    if isinstance(exc, EasySQLError):
        return exc.message
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        exc = exc.orig
    message = str(exc).strip() or exc.__class__.__name__
    return " ".join(message.split())
