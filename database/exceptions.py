"""Database exceptions."""


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema loading or migration fails."""
    pass


class DatabaseNotInitializedError(DatabaseError):
    """Raised when the connection pool is requested before it can be created."""
    pass
