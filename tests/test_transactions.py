"""
Tests for the transaction log and amount parsing
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, timedelta

from ledger_service.storage import InMemoryStorage
from ledger_service.transactions import Transaction, TransactionLog, TransactionType
from ledger_service.money import parse_amount, format_amount
from ledger_service.errors import InvalidAmount


class TestParseAmount:

    @pytest.mark.parametrize("value,expected", [
        (100, Decimal("100.00")),
        ("250.5", Decimal("250.50")),
        (" 12.34 ", Decimal("12.34")),
        (0.1, Decimal("0.10")),
        (Decimal("7"), Decimal("7.00")),
    ])
    def test_valid_amounts(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", [
        0, -5, "0", "-0.01", "abc", "", None, True, False,
        "NaN", "Infinity", float("inf"), "1.005", "1e400", [], {}
    ])
    def test_invalid_amounts(self, value):
        with pytest.raises(InvalidAmount):
            parse_amount(value)

    def test_invalid_amount_is_not_retryable(self):
        with pytest.raises(InvalidAmount) as exc_info:
            parse_amount("-1")
        assert exc_info.value.kind == "InvalidAmount"
        assert exc_info.value.retryable is False

    def test_format_amount(self):
        assert format_amount(Decimal("300.00")) == "300"
        assert format_amount(Decimal("12.50")) == "12.50"


class TestTransactionRecord:

    def _make(self, **overrides):
        now = datetime.now(timezone.utc)
        fields = dict(id="t1", created_at=now, updated_at=now,
                      transaction_type=TransactionType.TRANSFER,
                      from_account_id="a", to_account_id="b", amount=Decimal("5.00"))
        fields.update(overrides)
        return Transaction(**fields)

    def test_valid_transfer(self):
        transaction = self._make()
        assert transaction.is_transfer
        assert transaction.involves("a") and transaction.involves("b")
        assert not transaction.involves("c")

    def test_deposit_must_not_have_source(self):
        with pytest.raises(ValueError):
            self._make(transaction_type=TransactionType.DEPOSIT)

    def test_transfer_needs_both_ends(self):
        with pytest.raises(ValueError):
            self._make(from_account_id=None)

    def test_transfer_ends_must_differ(self):
        with pytest.raises(ValueError):
            self._make(to_account_id="a")

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError):
            self._make(amount=Decimal("0"))

    def test_effect_on(self):
        transaction = self._make()
        assert transaction.effect_on("a") == Decimal("-5.00")
        assert transaction.effect_on("b") == Decimal("5.00")
        assert transaction.effect_on("c") == Decimal("0")


class TestTransactionLog:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.log = TransactionLog(self.storage)

    def test_append_deposit(self):
        transaction = self.log.append(TransactionType.DEPOSIT, Decimal("10.00"), to_account_id="a")

        assert transaction.is_deposit
        assert transaction.from_account_id is None
        assert self.log.get(transaction.id) == transaction
        assert self.log.count() == 1

    def test_sequence_is_monotonic(self):
        first = self.log.append(TransactionType.DEPOSIT, Decimal("1.00"), to_account_id="a")
        second = self.log.append(TransactionType.DEPOSIT, Decimal("1.00"), to_account_id="a")
        assert second.sequence > first.sequence

    def test_sequence_continues_after_reopen(self):
        self.log.append(TransactionType.DEPOSIT, Decimal("1.00"), to_account_id="a")
        last = self.log.append(TransactionType.DEPOSIT, Decimal("1.00"), to_account_id="a")

        reopened = TransactionLog(self.storage)
        following = reopened.append(TransactionType.DEPOSIT, Decimal("1.00"), to_account_id="a")

        assert following.sequence == last.sequence + 1

    def test_for_account_includes_both_directions(self):
        self.log.append(TransactionType.DEPOSIT, Decimal("10.00"), to_account_id="a")
        self.log.append(TransactionType.TRANSFER, Decimal("3.00"), to_account_id="b", from_account_id="a")
        self.log.append(TransactionType.TRANSFER, Decimal("1.00"), to_account_id="a", from_account_id="b")
        self.log.append(TransactionType.DEPOSIT, Decimal("99.00"), to_account_id="c")

        assert len(self.log.for_account("a")) == 3
        assert len(self.log.for_account("b")) == 2
        assert len(self.log.for_account("c")) == 1

    def test_for_account_newest_first_with_sequence_tiebreak(self):
        moment = datetime(2026, 10, 19, 14, 5, 9, tzinfo=timezone.utc)
        older = self.log.append(TransactionType.DEPOSIT, Decimal("1.00"), to_account_id="a",
                                created_at=moment - timedelta(minutes=1))
        first = self.log.append(TransactionType.DEPOSIT, Decimal("2.00"), to_account_id="a", created_at=moment)
        second = self.log.append(TransactionType.DEPOSIT, Decimal("3.00"), to_account_id="a", created_at=moment)

        assert [t.id for t in self.log.for_account("a")] == [second.id, first.id, older.id]

    def test_all_in_append_order(self):
        ids = [self.log.append(TransactionType.DEPOSIT, Decimal("1.00"), to_account_id="a").id
               for _ in range(3)]
        assert [t.id for t in self.log.all()] == ids

    def test_replay_balance(self):
        self.log.append(TransactionType.DEPOSIT, Decimal("100.00"), to_account_id="a")
        self.log.append(TransactionType.TRANSFER, Decimal("30.00"), to_account_id="b", from_account_id="a")
        self.log.append(TransactionType.TRANSFER, Decimal("5.25"), to_account_id="a", from_account_id="b")

        assert self.log.replay_balance("a") == Decimal("75.25")
        assert self.log.replay_balance("b") == Decimal("24.75")
        assert self.log.replay_balance("nobody") == Decimal("0")

    def test_invalid_references_rejected(self):
        with pytest.raises(ValueError):
            self.log.append(TransactionType.TRANSFER, Decimal("1.00"), to_account_id="a")
        assert self.log.count() == 0
