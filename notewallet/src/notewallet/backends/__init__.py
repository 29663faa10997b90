"""
Note provider and transaction executor implementations.

Available backends:
- InMemoryLedger: local note set implementing both interfaces (simulation, tests)

Ledger-backed implementations live outside this package and implement
NoteProvider and TransactionExecutor.
"""

from notewallet.backends.base import NoteProvider, TransactionExecutor
from notewallet.backends.memory import InMemoryLedger

__all__ = [
    "InMemoryLedger",
    "NoteProvider",
    "TransactionExecutor",
]
