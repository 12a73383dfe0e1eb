"""
Per-student savings ledger.

Entries are only ever appended at the tail. The tail is stored explicitly
on the student's SavingsAccount (``last_transaction``), and only that entry
may be corrected or deleted. Every entry's ``balance_before`` equals the
previous entry's ``balance_after`` (zero for the first entry).

Callers must hold the student row lock inside ``transaction.atomic()``;
SavingsService does this for every operation.
"""

from django.db import transaction

from .calculations import ZERO
from .exceptions import InsufficientFunds, InvalidRequest, NotLastEntry
from .models import SavingsAccount, SavingsTransaction
from .numbering import next_savings_number


class SavingsLedger:

    def __init__(self, student):
        self.student = student

    # ─── reads ────────────────────────────────────────────────────

    def entries(self):
        return SavingsTransaction.objects.filter(student=self.student).order_by('transaction_date', 'id')

    def latest_entry(self, exclude=None):
        qs = SavingsTransaction.objects.filter(student=self.student)
        if exclude is not None:
            qs = qs.exclude(pk=exclude.pk)
        return qs.order_by('-transaction_date', '-id').first()

    def current_balance(self):
        tail = self.latest_entry()
        return tail.balance_after if tail else ZERO

    def account(self):
        """The student's SavingsAccount, locked, created on first use."""
        account = SavingsAccount.objects.select_for_update().filter(student=self.student).first()
        if account is None:
            tail = self.latest_entry()
            account = SavingsAccount.objects.create(
                student=self.student,
                last_transaction=tail,
                balance=tail.balance_after if tail else ZERO,
            )
        return account

    # ─── writes ───────────────────────────────────────────────────

    @transaction.atomic
    def append(self, transaction_type, amount, transaction_date, actor, notes=''):
        account = self.account()
        tail = account.last_transaction

        if tail and transaction_date < tail.transaction_date:
            raise InvalidRequest(
                {'transaction_date': [f"Date cannot be earlier than the last transaction ({tail.transaction_date})."]},
                'Transactions must be recorded in date order.',
            )

        balance_before = tail.balance_after if tail else ZERO
        balance_after = self._apply(transaction_type, amount, balance_before)

        entry = SavingsTransaction.objects.create(
            transaction_number=next_savings_number(),
            student=self.student,
            transaction_type=transaction_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            transaction_date=transaction_date,
            notes=notes,
            created_by=actor,
        )
        self._move_tail(account, entry)
        return entry

    @transaction.atomic
    def mutate_last(self, entry, **changes):
        account = self.account()
        self._ensure_tail(account, entry)

        for name, value in changes.items():
            setattr(entry, name, value)

        predecessor = self.latest_entry(exclude=entry)
        if predecessor and entry.transaction_date < predecessor.transaction_date:
            raise InvalidRequest(
                {'transaction_date': [f"Date cannot be earlier than the previous transaction ({predecessor.transaction_date})."]},
                'Transactions must stay in date order.',
            )

        entry.balance_before = predecessor.balance_after if predecessor else ZERO
        entry.balance_after = self._apply(entry.transaction_type, entry.amount, entry.balance_before)
        entry.save()
        self._move_tail(account, entry)
        return entry

    @transaction.atomic
    def delete_last(self, entry):
        account = self.account()
        self._ensure_tail(account, entry)

        predecessor = self.latest_entry(exclude=entry)
        account.last_transaction = predecessor
        account.balance = predecessor.balance_after if predecessor else ZERO
        account.save(update_fields=['last_transaction', 'balance', 'updated_at'])
        entry.delete()
        return predecessor

    # ─── helpers ──────────────────────────────────────────────────

    @staticmethod
    def _apply(transaction_type, amount, balance_before):
        if transaction_type == 'withdrawal':
            if amount > balance_before:
                raise InsufficientFunds(
                    f"Balance is {balance_before}; cannot withdraw {amount}.",
                    {'balance': str(balance_before), 'requested': str(amount)},
                )
            return balance_before - amount
        return balance_before + amount

    @staticmethod
    def _ensure_tail(account, entry):
        if account.last_transaction_id != entry.pk:
            raise NotLastEntry(
                'Only the most recent savings transaction can be changed.',
                {
                    'transaction_number': entry.transaction_number,
                    'last_transaction_id': account.last_transaction_id,
                },
            )

    @staticmethod
    def _move_tail(account, entry):
        account.last_transaction = entry
        account.balance = entry.balance_after
        account.save(update_fields=['last_transaction', 'balance', 'updated_at'])
