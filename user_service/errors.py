class MalformedInput(ValueError):
    """Request body that cannot be turned into a user record."""


class StoreError(Exception):
    """Failure talking to the key-value store."""


class ClientDisconnected(Exception):
    """The client went away before the store call finished."""
