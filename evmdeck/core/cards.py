"""Output cards and the list that orders them.

Cards are appended in creation order and only ever removed all at once.
Each card receives a ``position`` from a counter that keeps counting across
:meth:`CardList.clear`, so a position names exactly one card for the
lifetime of the process.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .codec import AbiValue, DecodedLog
from .contract_manager import FunctionDescriptor

SEVERITIES = ("info", "success", "warning", "error")


class TxStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    REVERTED = "reverted"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not TxStatus.PENDING


@dataclass(frozen=True)
class CardAction:
    """A footer action: stable ``id``, display ``label`` and shortcut ``key``."""

    id: str
    label: str
    key: str


TRANSACTION_ACTIONS: Tuple[CardAction, ...] = (
    CardAction("receipt", "View Receipt", "r"),
    CardAction("trace", "Debug Trace", "d"),
    CardAction("logs", "View Logs", "l"),
)
CALL_ACTIONS: Tuple[CardAction, ...] = (
    CardAction("result", "View Result", "v"),
    CardAction("calldata", "Copy Calldata", "c"),
    CardAction("again", "Call Again", "a"),
)


@dataclass(frozen=True)
class TxOutcome:
    """Everything a receipt (or a lookup failure) tells us about a transaction.

    Built off to the side and attached to its card in one assignment.
    """

    status: TxStatus
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    logs: Tuple[DecodedLog, ...] = ()
    revert_reason: Optional[str] = None
    failure: Optional[str] = None
    contract_address: Optional[str] = None
    receipt: Optional[Dict[str, Any]] = field(default=None, compare=False)


@dataclass(eq=False, kw_only=True)
class Card:
    position: int = -1
    created_at: float = field(default_factory=time.time)

    @property
    def kind(self) -> str:
        return type(self).__name__.replace("Card", "").lower()

    @property
    def actions(self) -> Tuple[CardAction, ...]:
        return ()

    @property
    def interactive(self) -> bool:
        return bool(self.actions)

    def action(self, key: str) -> Optional[CardAction]:
        for item in self.actions:
            if key in (item.key, item.id):
                return item
        return None


@dataclass(eq=False, kw_only=True)
class TransactionCard(Card):
    tx_hash: str
    function: FunctionDescriptor
    sender: str
    to: Optional[str] = None
    inputs: Tuple[AbiValue, ...] = ()
    gas_estimate: Optional[int] = None
    value: int = 0
    contract_key: Optional[str] = None
    outcome: Optional[TxOutcome] = field(default=None, init=False)

    @property
    def status(self) -> TxStatus:
        return self.outcome.status if self.outcome else TxStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.outcome is None

    @property
    def is_deployment(self) -> bool:
        return self.function.is_constructor

    @property
    def block_number(self) -> Optional[int]:
        return self.outcome.block_number if self.outcome else None

    @property
    def gas_used(self) -> Optional[int]:
        return self.outcome.gas_used if self.outcome else None

    @property
    def logs(self) -> Optional[Tuple[DecodedLog, ...]]:
        return self.outcome.logs if self.outcome else None

    @property
    def revert_reason(self) -> Optional[str]:
        return self.outcome.revert_reason if self.outcome else None

    @property
    def contract_address(self) -> Optional[str]:
        return self.outcome.contract_address if self.outcome else None

    @property
    def actions(self) -> Tuple[CardAction, ...]:
        if self.status in (TxStatus.SUCCESS, TxStatus.REVERTED):
            return TRANSACTION_ACTIONS
        return ()

    def finalize(self, outcome: TxOutcome) -> bool:
        """Attach ``outcome`` if the card is still pending.

        Returns ``False`` without touching the card when it already reached
        a terminal state.
        """

        if not outcome.status.terminal:
            raise ValueError("a transaction can only be finalized with a terminal status")
        if self.outcome is not None:
            return False
        self.outcome = outcome
        return True


@dataclass(eq=False, kw_only=True)
class CallCard(Card):
    function: FunctionDescriptor
    inputs: Tuple[AbiValue, ...] = ()
    outputs: Tuple[AbiValue, ...] = ()
    block_number: Optional[int] = None
    caller: Optional[str] = None
    target: Optional[str] = None
    calldata: bytes = b""
    contract_key: Optional[str] = None
    # Token decimals of the target, for the scaled secondary rendering.
    decimals: Optional[int] = None

    @property
    def actions(self) -> Tuple[CardAction, ...]:
        return CALL_ACTIONS


@dataclass(eq=False, kw_only=True)
class LogCard(Card):
    message: str
    severity: str = "info"

    def __post_init__(self) -> None:
        if self.severity not in SEVERITIES:
            raise ValueError(f"unknown severity {self.severity!r}")


class CardList:
    """Append-only card sequence with a single selection."""

    def __init__(self) -> None:
        self._cards: List[Card] = []
        self._selected: Optional[int] = None
        self._next_position = 0
        self._scroll_pending = False
        self._expanded: Set[int] = set()

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)

    def __getitem__(self, index: int) -> Card:
        return self._cards[index]

    @property
    def selected_index(self) -> Optional[int]:
        return self._selected

    @property
    def selected(self) -> Optional[Card]:
        return None if self._selected is None else self._cards[self._selected]

    def append(self, card: Card) -> int:
        """Add ``card`` at the end, select it and request a scroll to it."""

        card.position = self._next_position
        self._next_position += 1
        self._cards.append(card)
        self._selected = len(self._cards) - 1
        self._scroll_pending = True
        return card.position

    def take_scroll_request(self) -> bool:
        pending, self._scroll_pending = self._scroll_pending, False
        return pending

    def select(self, index: int) -> Optional[Card]:
        if not self._cards:
            self._selected = None
            return None
        self._selected = max(0, min(index, len(self._cards) - 1))
        return self._cards[self._selected]

    def select_next(self) -> Optional[Card]:
        if not self._cards:
            return None
        current = -1 if self._selected is None else self._selected
        return self.select((current + 1) % len(self._cards))

    def select_previous(self) -> Optional[Card]:
        if not self._cards:
            return None
        current = 0 if self._selected is None else self._selected
        return self.select((current - 1) % len(self._cards))

    def select_position(self, position: int) -> Optional[Card]:
        for index, card in enumerate(self._cards):
            if card.position == position:
                return self.select(index)
        return None

    def clear(self) -> List[Card]:
        """Remove every card; callers confirm with the user beforehand."""

        removed, self._cards = self._cards, []
        self._selected = None
        self._scroll_pending = False
        self._expanded.clear()
        return removed

    def find_transaction(self, tx_hash: str) -> Optional[TransactionCard]:
        for card in self._cards:
            if isinstance(card, TransactionCard) and card.tx_hash.lower() == tx_hash.lower():
                return card
        return None

    def pending_transactions(self) -> List[TransactionCard]:
        return [card for card in self._cards if isinstance(card, TransactionCard) and card.is_pending]

    def toggle_expanded(self, position: int) -> bool:
        if position in self._expanded:
            self._expanded.discard(position)
            return False
        self._expanded.add(position)
        return True

    def is_expanded(self, position: int) -> bool:
        return position in self._expanded


__all__ = [
    "CALL_ACTIONS",
    "Card",
    "CardAction",
    "CardList",
    "CallCard",
    "LogCard",
    "TRANSACTION_ACTIONS",
    "TransactionCard",
    "TxOutcome",
    "TxStatus",
]
