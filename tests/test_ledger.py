"""
Tests for the ledger recorder.
"""

import asyncio
import math

import pytest

from core.exceptions import InvalidInput
from core.ledger import format_amount, validate_amount, validate_entry
from models import TransactionKind


class TestRecord:

    def test_record_materializes_transaction(self, ledger):
        tx = asyncio.run(ledger.record("S1", "P1", "buyin", 100))

        assert tx.id
        assert tx.session_id == "S1"
        assert tx.player_id == "P1"
        assert tx.kind == TransactionKind.BUY_IN
        assert tx.amount == 100
        assert tx.timestamp is not None

    @pytest.mark.parametrize("kind,expected", [
        ("buyin", "Buy-in 100"),
        ("win", "Won 100"),
        ("loss", "Lost 100"),
    ])
    def test_default_notes(self, ledger, kind, expected):
        tx = asyncio.run(ledger.record("S1", "P1", kind, 100))
        assert tx.note == expected

    def test_fractional_amount_note(self, ledger):
        tx = asyncio.run(ledger.record("S1", "P1", "win", 12.5))
        assert tx.note == "Won 12.5"

    def test_explicit_note_is_kept(self, ledger):
        tx = asyncio.run(ledger.record("S1", "P1", "loss", 30, note="river bad beat"))
        assert tx.note == "river bad beat"

    def test_zero_amount_is_allowed(self, ledger):
        tx = asyncio.run(ledger.record("S1", "P1", "win", 0))
        assert tx.amount == 0

    @pytest.mark.parametrize("amount", [-1, -0.5, math.nan, math.inf, -math.inf, True, "100", None])
    def test_invalid_amount_writes_nothing(self, ledger, amount):
        with pytest.raises(InvalidInput):
            asyncio.run(ledger.record("S1", "P1", "buyin", amount))

        assert asyncio.run(ledger.history("S1", "P1")) == []

    def test_unknown_kind_writes_nothing(self, ledger):
        with pytest.raises(InvalidInput):
            asyncio.run(ledger.record("S1", "P1", "rebuy", 100))

        assert asyncio.run(ledger.history("S1", "P1")) == []


class TestHistory:

    def test_empty_pair_returns_empty_list(self, ledger):
        assert asyncio.run(ledger.history("S1", "nobody")) == []

    def test_history_is_oldest_first(self, ledger):
        async def scenario():
            first = await ledger.record("S1", "P1", "buyin", 100)
            second = await ledger.record("S1", "P1", "loss", 40)
            third = await ledger.record("S1", "P1", "win", 15)
            return [first, second, third], await ledger.history("S1", "P1")

        recorded, history = asyncio.run(scenario())

        assert [tx.id for tx in history] == [tx.id for tx in recorded]
        assert history == recorded

    def test_totals_are_derived_from_the_log(self, ledger):
        async def scenario():
            await ledger.record("S1", "P1", "buyin", 100)
            await ledger.record("S1", "P1", "buyin", 50)
            await ledger.record("S1", "P1", "win", 80)
            await ledger.record("S1", "P1", "loss", 30)
            return await ledger.totals("S1", "P1")

        totals = asyncio.run(scenario())

        assert totals.buy_in == 150
        assert totals.wins == 80
        assert totals.losses == 30
        assert totals.net == 50


class TestValidation:

    def test_validate_entry_accepts_enum_and_value(self):
        assert validate_entry(TransactionKind.WIN, 1) == TransactionKind.WIN
        assert validate_entry("loss", 1) == TransactionKind.LOSS

    def test_validate_amount_returns_float(self):
        assert validate_amount(7) == 7.0
        assert isinstance(validate_amount(7), float)

    def test_validate_amount_uses_label(self):
        with pytest.raises(InvalidInput, match="Final chips"):
            validate_amount(-5, label="Final chips")

    def test_format_amount(self):
        assert format_amount(100.0) == "100"
        assert format_amount(2.25) == "2.25"
