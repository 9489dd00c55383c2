"""Credit debits for completed uploads.

The debit is fire-and-forget: it runs on a background executor, and a
failure is logged for reconciliation but never changes the video.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Optional

from django.conf import settings
from django.db import close_old_connections
from django.db.models import F
from django.utils import timezone
from django.utils.module_loading import import_string

from .models import CreditAccount

logger = logging.getLogger(__name__)


def debit_amount(file_count: int, story_mode: bool) -> int:
    """One credit per uploaded file, plus one when story mode is on."""
    return int(file_count) + (1 if story_mode else 0)


class CreditLedger:
    def debit(self, user_id: str, amount: int) -> None:
        raise NotImplementedError


class AccountLedger(CreditLedger):
    """Debits ``CreditAccount`` rows in place; unlimited accounts are never charged."""

    def debit(self, user_id: str, amount: int) -> None:
        updated = CreditAccount.objects.filter(user_id=str(user_id), unlimited=False).update(
            balance=F("balance") - amount,
            used=F("used") + amount,
            updated_at=timezone.now(),
        )
        if updated:
            return
        if not CreditAccount.objects.filter(user_id=str(user_id)).exists():
            raise CreditAccount.DoesNotExist(f"No credit account for user {user_id}")


def get_ledger() -> CreditLedger:
    return import_string(settings.CREDIT_LEDGER)()


class CreditHook:
    def __init__(self, ledger: Optional[CreditLedger] = None, executor: Optional[Executor] = None):
        self._ledger = ledger
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="credits")

    @property
    def ledger(self) -> CreditLedger:
        if self._ledger is None:
            self._ledger = get_ledger()
        return self._ledger

    def upload_completed(self, user_id, file_count: int, story_mode: bool = False) -> Future:
        amount = debit_amount(file_count, story_mode)
        return self.executor.submit(self._debit, str(user_id), amount)

    def _debit(self, user_id: str, amount: int) -> bool:
        close_old_connections()
        try:
            self.ledger.debit(user_id, amount)
        except Exception:
            # The upload already succeeded; reconcile the balance out of band.
            logger.exception("credit debit failed for user %s (%d credits); balance mismatch", user_id, amount)
            return False
        finally:
            close_old_connections()
        logger.info("Debited %d credit(s) from user %s", amount, user_id)
        return True


_hook: Optional[CreditHook] = None


def get_credit_hook() -> CreditHook:
    global _hook
    if _hook is None:
        _hook = CreditHook()
    return _hook
