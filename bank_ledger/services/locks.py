"""
Per-account mutation leases.

A lease is an exclusive right to mutate one account, held for the
whole of one atomic unit (read balance, check funds, write, commit).
Two withdrawals against the same account therefore never both see
the pre-debit balance.

Leases are acquired in sorted account-number order, so two transfers
between the same pair of accounts in opposite directions cannot
deadlock. Within a process this is the serialization guarantee; the
services additionally read account rows with SELECT ... FOR UPDATE so
that PostgreSQL row locks cover multiple processes.
"""

import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class _Lease:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        # Holders plus waiters; the entry is dropped when this hits 0.
        self.users = 0


class AccountLockManager:

    def __init__(self):
        self._leases: dict[str, _Lease] = {}
        self._registry_lock = threading.Lock()

    def _checkout(self, account_number: str) -> threading.Lock:
        with self._registry_lock:
            lease = self._leases.get(account_number)
            if lease is None:
                lease = self._leases[account_number] = _Lease()
            lease.users += 1
            return lease.lock

    def _checkin(self, account_number: str) -> None:
        with self._registry_lock:
            lease = self._leases[account_number]
            lease.users -= 1
            if lease.users == 0:
                del self._leases[account_number]

    @staticmethod
    def acquisition_order(*account_numbers: str | None) -> list[str]:
        """Distinct, non-empty account numbers in lease order."""
        return sorted({n for n in account_numbers if n})

    @contextmanager
    def hold(self, *account_numbers: str | None):
        """Hold the leases of every given account for the block."""
        ordered = self.acquisition_order(*account_numbers)
        checked_out: list[tuple[str, threading.Lock, bool]] = []
        try:
            for number in ordered:
                lock = self._checkout(number)
                checked_out.append((number, lock, False))
                lock.acquire()
                checked_out[-1] = (number, lock, True)
            logger.debug("Holding account leases %s", ordered)
            yield ordered
        finally:
            for number, lock, acquired in reversed(checked_out):
                if acquired:
                    lock.release()
                self._checkin(number)

    def is_held(self, account_number: str) -> bool:
        with self._registry_lock:
            lease = self._leases.get(account_number)
            return lease is not None and lease.lock.locked()

    def tracked_count(self) -> int:
        """Number of accounts with a holder or waiter."""
        with self._registry_lock:
            return len(self._leases)


# Process-wide lease registry shared by every TransactionService.
account_locks = AccountLockManager()
