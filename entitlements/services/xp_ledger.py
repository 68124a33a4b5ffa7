"""Port to the external XP ledger that owns users' XP balances."""

from typing import Protocol


class XPLedger(Protocol):
    """The authoritative XP balance store (owned by the quiz service).

    ``debit`` must fail (raise) rather than drive a balance negative; the
    redemption engine rolls back its own writes when it does. If the engine's
    writes fail to commit after a successful debit, it calls ``credit`` with
    the same ``reference`` to return the XP.
    """

    async def get_balance(self, user_id: str) -> int: ...

    async def debit(self, user_id: str, amount: int, reference: str) -> int:
        """Subtract ``amount`` and return the new balance."""
        ...

    async def credit(self, user_id: str, amount: int, reference: str) -> int:
        """Add ``amount`` back, reversing the debit made under ``reference``."""
        ...
