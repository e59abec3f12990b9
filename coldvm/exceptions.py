"""Custom exceptions for Cold VM."""


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class NoBootableMediaError(ManagerError):
    """Raised when neither a disk image nor boot media can be found or created."""


class BootInterrupted(Exception):
    """Raised inside the boot sequence once a stop has been requested."""
