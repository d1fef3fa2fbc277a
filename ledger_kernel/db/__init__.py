"""Database infrastructure: declarative base, engine and immutability listeners."""

from ledger_kernel.db.base import Base, TrackedBase, UUIDString

__all__ = ["Base", "TrackedBase", "UUIDString"]
