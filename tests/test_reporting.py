"""
Tests for transaction history reporting
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from ledger_service.storage import InMemoryStorage
from ledger_service.accounts import AccountStore, AccountType
from ledger_service.transactions import Transaction, TransactionLog, TransactionType
from ledger_service.directory import StorageUserDirectory, Holder
from ledger_service.ledger import LedgerEngine
from ledger_service.reporting import (
    HistoryReporter, HistoryEntry, Direction, PartyView,
    classify_direction, partition_entries
)
from ledger_service.errors import AccountNotFound, InsufficientFunds


def _entry(direction, transaction_type, amount="1.00", transaction_id="t"):
    return HistoryEntry(
        transaction_id=transaction_id,
        transaction_type=transaction_type,
        amount=Decimal(amount),
        description=None,
        date=datetime(2026, 10, 19, 14, 5, 9, tzinfo=timezone.utc),
        direction=direction,
        from_party=None,
        to_party=None,
    )


class TestHistoryReport:
    """History after a deposit, a transfer and a rejected transfer"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.accounts = AccountStore(self.storage)
        self.log = TransactionLog(self.storage)
        self.directory = StorageUserDirectory(self.storage)
        self.engine = LedgerEngine(self.storage, self.accounts, self.log, directory=self.directory)
        self.reporter = HistoryReporter(self.accounts, self.log, directory=self.directory,
                                        locks=self.engine.locks)

        self.directory.add_user("Alice Banda", "alice@example.com", user_id="user-a")
        self.directory.add_user("Brian Phiri", "brian@example.com", user_id="user-b")
        self.a = self.accounts.create_account("user-a", AccountType.SAVINGS, account_number="SAV-000000001")
        self.b = self.accounts.create_account("user-b", AccountType.STUDENT, account_number="STU-000000002")
        self.a.balance = Decimal("1000.00")
        self.b.balance = Decimal("200.00")
        self.accounts.save(self.a)
        self.accounts.save(self.b)

        self.engine.deposit("SAV-000000001", 500)
        self.engine.transfer("SAV-000000001", "STU-000000002", 300)
        with pytest.raises(InsufficientFunds):
            self.engine.transfer("SAV-000000001", "STU-000000002", 5000)

    def test_summary(self):
        report = self.reporter.history("SAV-000000001")
        summary = report.summary

        assert summary.total_transactions == 2
        assert summary.outgoing_transfers == 1
        assert summary.total_amount_sent == Decimal("300.00")
        assert summary.incoming_transactions == 1
        assert summary.total_amount_received == Decimal("500.00")

    def test_account_view(self):
        data = self.reporter.history("SAV-000000001").to_dict()

        assert data["message"] == "Transaction history retrieved successfully"
        assert data["account"] == {
            "accountNumber": "SAV-000000001",
            "accountType": "savings",
            "accountHolderName": "Alice Banda",
            "accountHolderEmail": "alice@example.com",
            "currentBalance": "1200.00",
        }

    def test_entries_newest_first(self):
        report = self.reporter.history("SAV-000000001")

        assert [e.transaction_type for e in report.all_transactions] == [
            TransactionType.TRANSFER, TransactionType.DEPOSIT
        ]

    def test_outgoing_entry(self):
        data = self.reporter.history("SAV-000000001").to_dict()
        entry = data["outgoingTransfers"][0]

        assert entry["direction"] == "outgoing"
        assert entry["amount"] == "300.00"
        assert entry["status"] == "completed"
        assert entry["transferSummary"] == "Transferred k300 to Brian Phiri (STU-000000002)"
        assert entry["from"]["accountNumber"] == "SAV-000000001"
        assert entry["to"]["accountHolderName"] == "Brian Phiri"
        assert entry["to"]["accountType"] == "student"

    def test_incoming_deposit_entry(self):
        data = self.reporter.history("SAV-000000001").to_dict()
        entry = data["incomingTransactions"][0]

        assert entry["type"] == "deposit"
        assert entry["direction"] == "incoming"
        assert entry["from"] is None
        assert entry["transferSummary"] == "Deposit of k500 to your account"

    def test_destination_sees_incoming_transfer(self):
        report = self.reporter.history("STU-000000002")
        data = report.to_dict()

        assert report.summary.total_transactions == 1
        assert report.summary.total_amount_received == Decimal("300.00")
        assert report.summary.outgoing_transfers == 0
        assert data["incomingTransactions"][0]["transferSummary"] == \
            "Received k300 from Alice Banda (SAV-000000001)"

    def test_buckets_are_disjoint_and_exhaustive(self):
        report = self.reporter.history("SAV-000000001")
        bucketed = report.outgoing_transfers + report.incoming_transactions + report.other_transactions

        assert sorted(e.transaction_id for e in bucketed) == \
            sorted(e.transaction_id for e in report.all_transactions)
        assert report.other_transactions == []

    def test_history_is_idempotent(self):
        first = self.reporter.history("SAV-000000001").to_dict()
        second = self.reporter.history("SAV-000000001").to_dict()
        assert first == second
        assert self.log.count() == 2

    def test_unknown_account(self):
        with pytest.raises(AccountNotFound):
            self.reporter.history("SAV-999999999")

    def test_unknown_lookups_leave_no_locks(self):
        for i in range(500):
            with pytest.raises(AccountNotFound):
                self.reporter.history(f"NOPE-{i}")
            with pytest.raises(AccountNotFound):
                self.reporter.reconcile(f"NOPE-{i}")

        assert len(self.engine.locks) == 0

    def test_account_without_transactions(self):
        self.accounts.create_account("user-c", AccountType.SCHOOL, account_number="SCH-000000003")
        report = self.reporter.history("SCH-000000003")

        assert report.summary.total_transactions == 0
        assert report.summary.total_amount_sent == Decimal("0.00")
        assert report.to_dict()["account"]["accountHolderName"] == "Unknown"

    def test_reconcile_detects_seeded_balance(self):
        # 1000.00 was seeded outside the log
        result = self.reporter.reconcile("SAV-000000001")

        assert result.stored_balance == Decimal("1200.00")
        assert result.replayed_balance == Decimal("200.00")
        assert not result.is_balanced

    def test_reconcile_balanced_account(self):
        account = self.engine.open_account("user-c", AccountType.PERSON, initial_deposit="40.00")
        self.engine.transfer(account.account_number, "STU-000000002", "15.00")

        result = self.reporter.reconcile(account.account_number)

        assert result.is_balanced
        assert result.replayed_balance == Decimal("25.00")
        assert result.transaction_count == 2


class TestEntryFormatting:

    def test_date_and_time_strings(self):
        entry = _entry(Direction.INCOMING, TransactionType.DEPOSIT)
        data = entry.to_dict()

        assert data["formattedDate"] == "October 19, 2026"
        assert data["formattedTime"] == "02:05:09 PM"
        assert data["dateTimeString"] == "October 19, 2026 at 02:05:09 PM"

    def test_single_digit_day(self):
        entry = _entry(Direction.INCOMING, TransactionType.DEPOSIT)
        entry.date = datetime(2026, 3, 5, 9, 0, 0, tzinfo=timezone.utc)
        assert entry.formatted_date == "March 5, 2026"
        assert entry.formatted_time == "09:00:00 AM"

    def test_fractional_amount_in_summary(self):
        entry = _entry(Direction.OUTGOING, TransactionType.TRANSFER, amount="12.50")
        entry.to_party = PartyView("PER-1", "person", Holder("Chikondi", "c@example.com"))
        assert entry.transfer_summary == "Transferred k12.50 to Chikondi (PER-1)"

    def test_missing_counterparty_label(self):
        entry = _entry(Direction.INCOMING, TransactionType.TRANSFER)
        assert entry.transfer_summary == "Received k1 from Unknown (Unknown)"


class TestClassification:

    def _transfer(self, source, destination):
        now = datetime.now(timezone.utc)
        return Transaction(id="t", created_at=now, updated_at=now,
                           transaction_type=TransactionType.TRANSFER,
                           from_account_id=source, to_account_id=destination,
                           amount=Decimal("1.00"))

    def test_direction(self):
        transaction = self._transfer("a", "b")
        assert classify_direction(transaction, "a") == Direction.OUTGOING
        assert classify_direction(transaction, "b") == Direction.INCOMING
        assert classify_direction(transaction, "c") == Direction.UNKNOWN

    def test_residual_bucket_holds_unrelated_transactions(self):
        outgoing = _entry(Direction.OUTGOING, TransactionType.TRANSFER, "5.00", "out")
        incoming = _entry(Direction.INCOMING, TransactionType.TRANSFER, "7.00", "in")
        unrelated = _entry(Direction.UNKNOWN, TransactionType.TRANSFER, "9.00", "other")
        odd_outgoing_deposit = _entry(Direction.OUTGOING, TransactionType.DEPOSIT, "3.00", "odd")

        out_bucket, in_bucket, other_bucket = partition_entries(
            [outgoing, incoming, unrelated, odd_outgoing_deposit]
        )

        assert [e.transaction_id for e in out_bucket] == ["out"]
        assert [e.transaction_id for e in in_bucket] == ["in"]
        assert [e.transaction_id for e in other_bucket] == ["other", "odd"]

    def test_unrelated_entry_has_no_summary(self):
        assert _entry(Direction.UNKNOWN, TransactionType.TRANSFER).transfer_summary is None
