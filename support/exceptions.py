"""Support and dispute exceptions."""


class SupportError(Exception):
    """Base exception for support ticket and dispute operations."""
    pass


class TicketNotFoundError(SupportError):
    """Raised when a ticket doesn't exist."""
    pass


class DisputeNotFoundError(SupportError):
    """Raised when a dispute doesn't exist."""
    pass


class SupportPermissionError(SupportError):
    """Raised when the caller may not see or change a ticket or dispute."""
    pass


class DisputeExistsError(SupportError):
    """Raised when an order already has a dispute that isn't closed."""
    pass


class InvalidTransitionError(SupportError):
    """Raised when a ticket or dispute can't move to the requested status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from {current} to {target}")
