"""Errors raised by the Plejd mesh core."""


class PlejdError(Exception):
    """Base class for Plejd mesh errors."""


class TransportError(PlejdError):
    """A BLE connect, discover, read, write or subscribe operation failed."""


class ProtocolMismatchError(PlejdError):
    """The peer answered with something the protocol does not allow."""


class MeshTimeoutError(PlejdError):
    """A connect or characteristic discovery did not finish in time."""


class StateViolationError(PlejdError):
    """An operation was requested in a state that does not permit it."""


class InvalidInputError(PlejdError, ValueError):
    """Malformed key, address, challenge or command argument."""
