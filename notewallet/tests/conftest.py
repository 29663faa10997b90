"""
Test configuration for notewallet tests.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable

import pytest
from notecore.models import Note

from notewallet.backends.memory import InMemoryLedger
from notewallet.config import ConsolidationConfig

TOKEN = "usdc"


@pytest.fixture
def token_id() -> str:
    return TOKEN


@pytest.fixture
def make_notes() -> Callable[..., list[Note]]:
    """Build a note snapshot from amounts; leaf indexes follow list order."""

    def _make(
        amounts: list[int], token_id: str = TOKEN, spent: set[int] | None = None
    ) -> list[Note]:
        spent = spent or set()
        return [
            Note(
                commitment=hashlib.sha256(f"{token_id}:{i}:{amount}".encode()).digest(),
                token_id=token_id,
                amount=amount,
                leaf_index=i,
                spent=i in spent,
            )
            for i, amount in enumerate(amounts)
        ]

    return _make


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def consolidation_config() -> ConsolidationConfig:
    """Fast settle polling for tests."""
    return ConsolidationConfig(
        token_id=TOKEN,
        confirmation_timeout_sec=1.0,
        settle_timeout_sec=0.5,
        settle_poll_interval_sec=0.01,
    )
