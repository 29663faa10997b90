"""
Smoke tests for the note-wallet CLI.
"""

from __future__ import annotations

import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from notewallet.cli import app


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in (
        "NOTEWALLET_TOKEN_ID",
        "NOTEWALLET_MAX_NOTES_PER_BATCH",
        "NOTEWALLET_DUST_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_logging():
    """Commands point loguru at the runner's stderr, which closes after each invoke."""
    yield
    logger.remove()
    logger.add(sys.stderr)


class TestAnalyzeCommand:
    def test_analyze(self, runner) -> None:
        result = runner.invoke(app, ["analyze", "10", "20", "30", "40", "50000"])
        assert result.exit_code == 0
        assert "Dust notes:         4" in result.stdout
        assert "Should consolidate: yes" in result.stdout
        assert "[high]" in result.stdout

    def test_analyze_tidy(self, runner) -> None:
        result = runner.invoke(app, ["analyze", "5000", "5000"])
        assert result.exit_code == 0
        assert "well organized" in result.stdout


class TestSelectCommand:
    def test_smallest_first_needs_consolidation(self, runner) -> None:
        result = runner.invoke(app, ["select", "10", "5", "3", "--target", "12"])
        assert result.exit_code == 1
        assert "exceeds_max_inputs" in result.stdout
        assert "consolidate" in result.stdout

    def test_greedy(self, runner) -> None:
        result = runner.invoke(
            app, ["select", "10", "5", "3", "--target", "12", "--strategy", "greedy"]
        )
        assert result.exit_code == 0
        assert "Selected: [10, 5]" in result.stdout
        assert "Change:   3" in result.stdout

    def test_protocol_fee(self, runner) -> None:
        """Test that a transfer adds 10 bps to the target."""
        result = runner.invoke(
            app,
            ["select", "10000", "5000", "--target", "10000", "-s", "greedy", "-o", "transfer"],
        )
        assert result.exit_code == 0
        assert "Change:   4,990" in result.stdout

    def test_insufficient(self, runner) -> None:
        result = runner.invoke(app, ["select", "1", "2", "--target", "10"])
        assert result.exit_code == 1
        assert "insufficient_balance" in result.stdout

    def test_target_required_positive(self, runner) -> None:
        result = runner.invoke(app, ["select", "1", "2", "--target", "0"])
        assert result.exit_code != 0


class TestPlanCommand:
    def test_plan(self, runner) -> None:
        result = runner.invoke(app, ["plan", "1", "1", "1", "1", "1"])
        assert result.exit_code == 0
        assert "2 batch(es), estimate 2" in result.stdout
        assert "Batch 1: [1, 1, 1] -> 3" in result.stdout
        assert "Batch 2: [1, 1, <3>] -> 5  (uses batch 1)" in result.stdout
        assert "Estimated cost: 400,000" in result.stdout

    def test_nothing_to_plan(self, runner) -> None:
        result = runner.invoke(app, ["plan", "5"])
        assert result.exit_code == 0
        assert "Nothing to consolidate" in result.stdout


class TestConsolidateCommand:
    def test_consolidate_to_target(self, runner) -> None:
        result = runner.invoke(app, ["consolidate", "1", "1", "1", "10", "--target", "12"])
        assert result.exit_code == 0
        assert "Status:  target_reachable" in result.stdout
        assert "Notes:   [3, 10]" in result.stdout

    def test_consolidate_all(self, runner) -> None:
        result = runner.invoke(app, ["consolidate", "1", "1", "1", "1", "1", "--batch-size", "2"])
        assert result.exit_code == 0
        assert "Status:  completed" in result.stdout
        assert "Batches: 4" in result.stdout
        assert "Notes:   [5]" in result.stdout

    def test_consolidate_with_fee(self, runner) -> None:
        result = runner.invoke(app, ["consolidate", "10", "10", "10", "--fee", "1"])
        assert result.exit_code == 0
        assert "Notes:   [29]" in result.stdout
        assert "Fees:    1" in result.stdout

    def test_consolidate_insufficient(self, runner) -> None:
        result = runner.invoke(app, ["consolidate", "1", "1", "--target", "100"])
        assert result.exit_code == 1
        assert "Status:  failed" in result.stdout
        assert "Insufficient balance" in result.stdout
