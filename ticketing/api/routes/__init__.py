"""HTTP routers exposed by the ticketing API."""

from . import ping, tickets

__all__ = ["ping", "tickets"]
