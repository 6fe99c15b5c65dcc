"""Receipt polling against a scripted receipt source."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Dict, List, Optional

from evmdeck.core.cards import TxStatus
from evmdeck.core.errors import NetworkError
from evmdeck.core.lifecycle import LifecycleEngine, PollFailed, PollPolicy, ReceiptArrived, build_outcome, failed_outcome

FAST = PollPolicy(interval=0, backoff=0, max_attempts=5, max_failures=3)


class ScriptedSource:
    """Returns (or raises) the scripted items in order, then repeats the last."""

    def __init__(self, *script: Any, revert: Optional[bytes] = None) -> None:
        self.script = list(script)
        self.lookups = 0
        self.revert = revert
        self._lock = threading.Lock()

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self.lookups += 1
            item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def revert_data(self, tx_hash: str, block_number: int) -> Optional[bytes]:
        return self.revert


def _run(source: ScriptedSource, *hashes: str, policy: PollPolicy = FAST) -> List[Any]:
    delivered: List[Any] = []

    async def scenario() -> None:
        engine = LifecycleEngine(source, delivered.append, policy)
        for tx_hash in hashes:
            engine.track(tx_hash)
        await engine.wait()

    asyncio.run(scenario())
    return delivered


RECEIPT = {"status": 1, "blockNumber": 12, "gasUsed": 43210, "logs": []}


def test_receipt_after_not_yet_mined() -> None:
    source = ScriptedSource(None, None, RECEIPT)
    delivered = _run(source, "0xaa")
    assert delivered == [ReceiptArrived("0xaa", RECEIPT)]
    assert source.lookups == 3


def test_transient_errors_are_retried() -> None:
    source = ScriptedSource(NetworkError("timeout"), RECEIPT)
    delivered = _run(source, "0xaa")
    assert isinstance(delivered[0], ReceiptArrived)


def test_non_retryable_error_fails_immediately() -> None:
    source = ScriptedSource(NetworkError("bad hash", retryable=False))
    delivered = _run(source, "0xaa")
    assert delivered == [PollFailed("0xaa", "bad hash")]
    assert source.lookups == 1


def test_too_many_failures() -> None:
    source = ScriptedSource(NetworkError("down"))
    delivered = _run(source, "0xaa")
    assert isinstance(delivered[0], PollFailed)
    assert source.lookups == FAST.max_failures


def test_gives_up_after_max_attempts() -> None:
    source = ScriptedSource(None)
    delivered = _run(source, "0xaa")
    assert delivered == [PollFailed("0xaa", "no receipt after 5 lookups")]


def test_one_poller_per_hash() -> None:
    source = ScriptedSource(None, RECEIPT)
    delivered: List[Any] = []

    async def scenario() -> None:
        engine = LifecycleEngine(source, delivered.append, FAST)
        assert engine.track("0xAA")
        assert not engine.track("0xaa")
        assert engine.in_flight == ["0xaa"]
        await engine.wait()
        assert engine.in_flight == []

    asyncio.run(scenario())
    assert len(delivered) == 1


def test_cancel_stops_delivery() -> None:
    source = ScriptedSource(None)
    delivered: List[Any] = []
    slow = PollPolicy(interval=60, max_attempts=5)

    async def scenario() -> None:
        engine = LifecycleEngine(source, delivered.append, slow)
        engine.track("0x01")
        engine.track("0x02")
        await asyncio.sleep(0.05)
        assert engine.cancel(["0x01"]) == 1
        assert engine.cancel() == 1
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert delivered == []


def test_failed_receipt_carries_revert_data() -> None:
    reverted = dict(RECEIPT, status=0)
    source = ScriptedSource(reverted, revert=b"\x01\x02")
    delivered = _run(source, "0xaa")
    assert delivered[0].revert_data == b"\x01\x02"


def test_build_outcome() -> None:
    success = build_outcome(RECEIPT)
    assert success.status is TxStatus.SUCCESS
    assert success.gas_used == 43210
    assert success.revert_reason is None

    reverted = build_outcome(dict(RECEIPT, status=0), revert_data=None)
    assert reverted.status is TxStatus.REVERTED
    assert reverted.revert_reason == "execution reverted"

    failed = failed_outcome("gone")
    assert failed.status is TxStatus.FAILED
    assert failed.failure == "gone"


def test_unexpected_error_fails_the_poll() -> None:
    source = ScriptedSource(TypeError("receipt field has the wrong type"))
    delivered: List[Any] = []

    async def scenario() -> None:
        engine = LifecycleEngine(source, delivered.append, FAST)
        engine.track("0xaa")
        await engine.wait()
        assert engine.in_flight == []

    asyncio.run(scenario())
    assert delivered == [PollFailed("0xaa", "receipt polling stopped: receipt field has the wrong type")]


def test_missing_status_counts_as_reverted() -> None:
    source = ScriptedSource(dict(RECEIPT, status=None), revert=b"")
    delivered = _run(source, "0xaa")
    assert isinstance(delivered[0], ReceiptArrived)
    assert build_outcome(delivered[0].receipt).status is TxStatus.REVERTED


def test_new_source_applies_to_new_polls_only() -> None:
    old = ScriptedSource(None, None, RECEIPT)
    new = ScriptedSource(RECEIPT)
    delivered: List[Any] = []

    async def scenario() -> None:
        engine = LifecycleEngine(old, delivered.append, FAST)
        engine.track("0x01")
        engine.source = new
        assert engine.source is new
        engine.track("0x02")
        await engine.wait()

    asyncio.run(scenario())
    assert sorted(message.tx_hash for message in delivered) == ["0x01", "0x02"]
    assert old.lookups == 3
    assert new.lookups == 1
