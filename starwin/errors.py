import sqlite3

import psycopg2


class StarwinError(Exception):
    """Base class for errors raised by the service itself."""


class StoreConnectivityError(StarwinError):
    """Backend unreachable or misconfigured."""


class StoreNotReadyError(StoreConnectivityError):
    """A request needed the store but the backend never opened."""


class StoreConstraintError(StarwinError):
    """Foreign-key, uniqueness or check violation on write."""


class QueryExecutionError(StarwinError):
    """Malformed statement or parameter mismatch."""


class AuthMismatchError(StarwinError):
    """Submitted password does not match the configured secret."""


def classify_store_error(exc: BaseException) -> type:
    """Map a driver exception to the taxonomy class it belongs to.

    Only used for reporting: the adapter never rewraps driver errors.
    """
    if isinstance(exc, StarwinError):
        return type(exc)
    if isinstance(exc, (sqlite3.IntegrityError, psycopg2.IntegrityError)):
        return StoreConstraintError
    if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return StoreConnectivityError
    if isinstance(exc, sqlite3.OperationalError) and "unable to open" in str(exc):
        return StoreConnectivityError
    return QueryExecutionError
