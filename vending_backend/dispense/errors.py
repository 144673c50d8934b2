"""Exceptions raised by the dispense core."""


class InvalidOrder(ValueError):
    """No item in the order maps to any configured shelf."""


class TransportPublishError(RuntimeError):
    """The transport refused or failed to send a shelf command."""

    def __init__(self, shelf_id: int, reason: str):
        super().__init__(f"publish to shelf {shelf_id} failed: {reason}")
        self.shelf_id = shelf_id
        self.reason = reason


class DispenseAborted(RuntimeError):
    """A pending response wait was cut short before its deadline."""
