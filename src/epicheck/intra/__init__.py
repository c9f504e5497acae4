"""Intranet access: REST client, planning and appointment helpers."""

from .client import IntraClient, SessionProvider

__all__ = ["IntraClient", "SessionProvider"]
