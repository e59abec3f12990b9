"""cold-vm package."""

__all__ = [
    "cli",
    "commands",
    "config",
    "constants",
    "devices",
    "exceptions",
    "firmware",
    "models",
    "network",
    "scanner",
    "supervisor",
    "utils",
    "vm",
]
