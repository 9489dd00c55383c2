import logging

import pytest

from videos.credits import AccountLedger, CreditHook, CreditLedger, debit_amount, get_ledger
from videos.models import CreditAccount

pytestmark = pytest.mark.django_db


class RecordingLedger(CreditLedger):
    def __init__(self):
        self.debits = []

    def debit(self, user_id, amount):
        self.debits.append((user_id, amount))


class BrokenLedger(CreditLedger):
    def debit(self, user_id, amount):
        raise ConnectionError("ledger unavailable")


def test_debit_amount():
    assert debit_amount(3, False) == 3
    assert debit_amount(2, True) == 3
    assert debit_amount(1, story_mode=True) == 2


def test_account_ledger_debits_balance():
    CreditAccount.objects.create(user_id="u1", balance=10)
    AccountLedger().debit("u1", 3)

    account = CreditAccount.objects.get(user_id="u1")
    assert (account.balance, account.used) == (7, 3)


def test_unlimited_accounts_are_not_charged():
    CreditAccount.objects.create(user_id="god", balance=5, unlimited=True)
    AccountLedger().debit("god", 4)
    assert CreditAccount.objects.get(user_id="god").balance == 5


def test_unknown_account_raises():
    with pytest.raises(CreditAccount.DoesNotExist):
        AccountLedger().debit("nobody", 1)


def test_hook_submits_to_executor(inline_executor):
    ledger = RecordingLedger()
    hook = CreditHook(ledger=ledger, executor=inline_executor)

    future = hook.upload_completed("u1", file_count=2, story_mode=True)

    assert future.result() is True
    assert ledger.debits == [("u1", 3)]


def test_hook_failure_is_logged_not_raised(inline_executor, caplog):
    hook = CreditHook(ledger=BrokenLedger(), executor=inline_executor)

    with caplog.at_level(logging.ERROR, logger="videos.credits"):
        future = hook.upload_completed("u1", file_count=1)

    assert future.result() is False
    assert "balance mismatch" in caplog.text


def test_ledger_is_configurable(settings):
    settings.CREDIT_LEDGER = "tests.test_credits.RecordingLedger"
    assert isinstance(get_ledger(), RecordingLedger)
    settings.CREDIT_LEDGER = "videos.credits.AccountLedger"
    assert isinstance(get_ledger(), AccountLedger)
