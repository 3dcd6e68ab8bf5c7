"""Domain-specific errors for curtaincall.

Link-level failures (connect, disconnect, endpoint resolution, writes) are not
raised; they are published on the status feed. These exceptions cover setup
and caller errors only.
"""


class CurtainCallError(Exception):
    """Base error for curtaincall."""


class ProfileValidationError(CurtainCallError):
    """Raised when a device profile does not conform to schema or semantics."""


class ProfileLoadError(CurtainCallError):
    """Raised when reading a device profile fails."""


class AlarmTimeError(CurtainCallError):
    """Raised when an alarm time cannot be parsed."""


class DeviceSelectionError(CurtainCallError):
    """Raised when a requested candidate is not among the discovered devices."""


class TransportError(CurtainCallError):
    """Base transport error."""


class TransportUnavailableError(TransportError):
    """Raised when the BLE stack cannot be used at all."""


class DeviceNotReadyError(TransportError):
    """Raised when the device did not reach the ready state in time."""
