"""Receipt polling for submitted transactions.

Each tracked hash gets one asyncio task that looks the receipt up in a
worker thread, sleeps, and tries again.  The task never touches a card: it
hands a :class:`ReceiptArrived` or :class:`PollFailed` message to the
``deliver`` callback and the main loop applies it (see
:meth:`evmdeck.core.session.Session.handle`).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Sequence

from .cards import TxOutcome, TxStatus
from .codec import decode_log, decode_revert
from .errors import NetworkError

logger = logging.getLogger(__name__)


class ReceiptSource(Protocol):
    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        ...

    def revert_data(self, tx_hash: str, block_number: int) -> Optional[bytes]:
        ...


@dataclass(frozen=True)
class ReceiptArrived:
    tx_hash: str
    receipt: Dict[str, Any] = field(compare=False)
    revert_data: Optional[bytes] = None


@dataclass(frozen=True)
class PollFailed:
    tx_hash: str
    reason: str


@dataclass(frozen=True)
class PollPolicy:
    """Polling cadence.

    ``max_attempts`` bounds lookups that return "not mined yet";
    ``max_failures`` bounds consecutive transient errors, each followed by
    an extra ``backoff`` seconds per failure so far.
    """

    interval: float = 1.0
    backoff: float = 0.5
    max_attempts: int = 300
    max_failures: int = 5


def _succeeded(receipt: Dict[str, Any]) -> bool:
    return int(receipt.get("status") or 0) == 1


def build_outcome(
    receipt: Dict[str, Any],
    events: Iterable[Any] = (),
    errors: Iterable[Any] = (),
    revert_data: Optional[bytes] = None,
) -> TxOutcome:
    """Turn a receipt into the terminal outcome of its transaction card."""

    events = list(events)
    logs = tuple(decode_log(entry, events) for entry in receipt.get("logs", []))
    success = _succeeded(receipt)
    return TxOutcome(
        status=TxStatus.SUCCESS if success else TxStatus.REVERTED,
        block_number=receipt.get("blockNumber"),
        gas_used=receipt.get("gasUsed"),
        logs=logs,
        revert_reason=None if success else decode_revert(revert_data, errors),
        contract_address=receipt.get("contractAddress"),
        receipt=receipt,
    )


def failed_outcome(reason: str) -> TxOutcome:
    return TxOutcome(status=TxStatus.FAILED, failure=reason)


class LifecycleEngine:
    """Owns the polling tasks; at most one per transaction hash."""

    def __init__(
        self,
        source: ReceiptSource,
        deliver: Callable[[Any], None],
        policy: PollPolicy = PollPolicy(),
    ) -> None:
        self._source = source
        self._deliver = deliver
        self.policy = policy
        self._tasks: Dict[str, "asyncio.Task[None]"] = {}

    @property
    def source(self) -> ReceiptSource:
        return self._source

    @source.setter
    def source(self, source: ReceiptSource) -> None:
        """Poll new hashes through ``source``; running polls keep theirs."""

        self._source = source

    @property
    def in_flight(self) -> Sequence[str]:
        return sorted(self._tasks)

    def track(self, tx_hash: str) -> bool:
        """Start polling ``tx_hash``; ``False`` if it is already polled."""

        key = tx_hash.lower()
        if key in self._tasks:
            return False
        task = asyncio.get_running_loop().create_task(self._poll(tx_hash, self._source), name=f"receipt:{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return True

    def _forget(self, key: str, task: "asyncio.Task[None]") -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def cancel(self, tx_hashes: Optional[Iterable[str]] = None) -> int:
        """Cancel polling for ``tx_hashes`` (everything when omitted)."""

        keys = list(self._tasks) if tx_hashes is None else [item.lower() for item in tx_hashes]
        cancelled = 0
        for key in keys:
            task = self._tasks.pop(key, None)
            if task is not None and not task.done():
                task.cancel()
                cancelled += 1
        return cancelled

    async def wait(self) -> None:
        """Wait until all current polling tasks finish."""

        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _fetch_revert(self, source: ReceiptSource, tx_hash: str, receipt: Dict[str, Any]) -> Optional[bytes]:
        replay = getattr(source, "revert_data", None)
        if replay is None or receipt.get("blockNumber") is None:
            return None
        try:
            return await asyncio.to_thread(replay, tx_hash, int(receipt["blockNumber"]))
        except NetworkError as exc:
            logger.info("could not replay %s for its revert reason: %s", tx_hash, exc)
            return None

    async def _poll(self, tx_hash: str, source: ReceiptSource) -> None:
        try:
            await self._follow(tx_hash, source)
        except Exception as exc:
            logger.exception("receipt polling for %s stopped", tx_hash)
            self._deliver(PollFailed(tx_hash, f"receipt polling stopped: {str(exc) or type(exc).__name__}"))

    async def _follow(self, tx_hash: str, source: ReceiptSource) -> None:
        policy = self.policy
        failures = 0
        attempts = 0
        while attempts < policy.max_attempts:
            attempts += 1
            try:
                receipt = await asyncio.to_thread(source.get_receipt, tx_hash)
            except NetworkError as exc:
                failures += 1
                logger.warning("receipt lookup %s failed (%d/%d): %s", tx_hash, failures, policy.max_failures, exc)
                if not exc.retryable or failures >= policy.max_failures:
                    self._deliver(PollFailed(tx_hash, str(exc)))
                    return
                await asyncio.sleep(policy.interval + policy.backoff * failures)
                continue
            if receipt is not None:
                revert = None
                if not _succeeded(receipt):
                    revert = await self._fetch_revert(source, tx_hash, receipt)
                self._deliver(ReceiptArrived(tx_hash, receipt, revert))
                return
            failures = 0
            await asyncio.sleep(policy.interval)
        self._deliver(PollFailed(tx_hash, f"no receipt after {attempts} lookups"))


__all__ = [
    "LifecycleEngine",
    "PollFailed",
    "PollPolicy",
    "ReceiptArrived",
    "ReceiptSource",
    "build_outcome",
    "failed_outcome",
]
