"""Exception hierarchy for Desktop Bridge.

Only transport and configuration errors are allowed to terminate a bridge.
Everything else is caught and logged at the point where it is detected
(frame decoding, command decoding, external actions, snapshots).
"""


class BridgeError(Exception):
    """Base class for all Desktop Bridge errors."""


class ConfigError(BridgeError):
    """Configuration is missing, unreadable or inconsistent."""


class TransportError(BridgeError):
    """The broker or an external process/IPC endpoint is unreachable.

    Raised when a connection cannot be established or when an event stream
    ends because the external process exited. Fatal to the affected bridge.
    """


class CommandDecodeError(BridgeError):
    """An inbound command payload could not be decoded."""


class ExternalCommandError(BridgeError):
    """The external subsystem rejected or failed a query or action."""


class InventoryError(BridgeError):
    """An operation referenced inventory that does not exist.

    Example: cycling sinks when the audio server reports none, or a default
    sink name that is missing from the sink list.
    """
