"""Database driver interfaces."""

from .driver import Driver, DriverConnection, DriverResult

__all__ = [
    "Driver",
    "DriverConnection",
    "DriverResult",
]
