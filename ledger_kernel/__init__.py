"""
Ledger Kernel - document posting and ledger consistency engine.

Turns mutable draft documents (warehouse documents, invoices, GL journal
entries) into immutable system-of-record facts while keeping three ledgers
consistent:
- Stock positions per (item, location)
- General-ledger entries and lines (double-entry balanced)
- Invoice payment status

Corrections happen through cancellation and reversal, never by editing or
deleting posted history.
"""

__version__ = "0.1.0"
