"""Rich renderables for cards, the footer submenu, the sidebar and status bar.

Everything here is a pure function of model objects so it can be exercised
without a running terminal.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable, List, Optional, Sequence

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..core.cards import CallCard, Card, CardAction, LogCard, TransactionCard, TxStatus
from ..core.codec import AbiValue, DecodedLog, format_units, humanize, render, render_call
from ..core.navigation import FooterMenu
from ..core.sidebar import NodeKind, TreeNode
from ..core.workers import AccountStatus

STATUS_STYLES = {
    TxStatus.PENDING: ("⏳", "yellow"),
    TxStatus.SUCCESS: ("✔", "green"),
    TxStatus.REVERTED: ("✖", "red"),
    TxStatus.FAILED: ("⚠", "magenta"),
}
SEVERITY_STYLES = {"info": "cyan", "success": "green", "warning": "yellow", "error": "red"}
TAG_STYLES = {"view": "green", "send": "yellow", "payable": "magenta", "deploy": "cyan"}


def _timestamp(card: Card) -> str:
    return datetime.fromtimestamp(card.created_at).strftime("%H:%M:%S")


def _short(value: Optional[str], width: int = 10) -> str:
    if not value:
        return "-"
    if len(value) <= 2 * width:
        return value
    return f"{value[:width]}…{value[-4:]}"


def footer_text(actions: Sequence[CardAction], highlighted: Optional[int]) -> Text:
    """The submenu line; the highlighted action is drawn reversed."""

    text = Text()
    for index, action in enumerate(actions):
        if index:
            text.append("  ")
        style = "bold reverse" if index == highlighted else "bold"
        text.append(f" {action.label} ({action.key}) ", style=style)
    return text


def transaction_body(card: TransactionCard, expanded: bool = False) -> Table:
    icon, colour = STATUS_STYLES[card.status]
    table = Table.grid(padding=(0, 1))
    table.add_column(style="dim", justify="right")
    table.add_column()
    if card.is_deployment:
        title = f"deploy {render_call('constructor', card.function.inputs, card.inputs)}"
    else:
        title = render_call(card.function.name, card.function.inputs, card.inputs)
    table.add_row(Text(icon, style=colour), Text(title, style="bold"))
    table.add_row("status", Text(card.status.value, style=colour))
    table.add_row("hash", card.tx_hash if expanded else _short(card.tx_hash))
    table.add_row("from", card.sender if expanded else _short(card.sender))
    if card.to:
        table.add_row("to", card.to if expanded else _short(card.to))
    if card.gas_estimate is not None:
        table.add_row("gas estimate", str(card.gas_estimate))
    if card.value:
        table.add_row("value", f"{format_units(card.value, 18)} ETH")
    outcome = card.outcome
    if outcome is None:
        return table
    if outcome.status is TxStatus.FAILED:
        table.add_row("reason", Text(outcome.failure or "unknown failure", style="magenta"))
        return table
    table.add_row("block", str(outcome.block_number))
    table.add_row("gas used", str(outcome.gas_used))
    if outcome.contract_address:
        table.add_row("contract", outcome.contract_address)
    if outcome.revert_reason:
        table.add_row("revert", Text(outcome.revert_reason, style="red"))
    for entry in outcome.logs if expanded else outcome.logs[:3]:
        table.add_row("log", entry.describe())
    hidden = len(outcome.logs) - 3
    if not expanded and hidden > 0:
        table.add_row("", Text(f"… {hidden} more", style="dim"))
    return table


def _output_text(value: AbiValue, decimals: Optional[int]) -> Text:
    text = Text(render(value))
    scaled = humanize(value, decimals)
    if scaled is not None:
        text.append(f"  ≈ {scaled}", style="dim")
    return text


def call_body(card: CallCard, expanded: bool = False) -> Table:
    table = Table.grid(padding=(0, 1))
    table.add_column(style="dim", justify="right")
    table.add_column()
    table.add_row(Text("◆", style="blue"), Text(render_call(card.function.name, card.function.inputs, card.inputs), style="bold"))
    outputs = card.function.outputs
    for index, value in enumerate(card.outputs):
        name = outputs[index].name if index < len(outputs) and outputs[index].name else f"[{index}]"
        table.add_row(name, _output_text(value, card.decimals))
    if not card.outputs:
        table.add_row("result", Text("(no return data)", style="dim"))
    table.add_row("block", str(card.block_number))
    if expanded:
        table.add_row("caller", card.caller or "-")
        table.add_row("target", card.target or "-")
        table.add_row("calldata", "0x" + card.calldata.hex())
    return table


def log_body(card: LogCard) -> Text:
    return Text(card.message, style=SEVERITY_STYLES.get(card.severity, ""))


def card_renderable(
    card: Card,
    *,
    selected: bool = False,
    expanded: bool = False,
    footer: Optional[FooterMenu] = None,
) -> RenderableType:
    if isinstance(card, TransactionCard):
        body: RenderableType = transaction_body(card, expanded)
        title = "transaction" if not card.is_deployment else "deployment"
    elif isinstance(card, CallCard):
        body = call_body(card, expanded)
        title = "call"
    elif isinstance(card, LogCard):
        body = log_body(card)
        title = card.severity
    else:
        raise TypeError(f"unknown card: {card!r}")
    if footer is not None and footer.position == card.position and card.actions:
        body = Group(body, Text(""), footer_text(card.actions, footer.highlighted))
    return Panel(
        body,
        title=f"#{card.position} {title}",
        title_align="left",
        subtitle=_timestamp(card),
        subtitle_align="right",
        border_style="bold cyan" if selected else "dim",
    )


def tree_text(nodes: Iterable[TreeNode], selected: int, *, focused: bool = True) -> Text:
    text = Text()
    for index, node in enumerate(nodes):
        if index:
            text.append("\n")
        marker = ""
        if node.expandable:
            marker = "▾ " if node.expanded else "▸ "
        line = Text("  " * node.depth + marker)
        if node.kind is NodeKind.NEW_CONTRACT:
            line.append(node.label, style="bold green")
        elif node.kind is NodeKind.LOAD_INSTANCE:
            line.append(node.label, style="italic")
        elif node.kind is NodeKind.CONSTRUCTOR:
            line.append("Deploy ", style="bold")
            line.append(node.label, style="dim")
        else:
            line.append(node.label)
        if node.tag and node.kind is NodeKind.METHOD:
            line.append(f" [{node.tag}]", style=TAG_STYLES.get(node.tag, ""))
        if index == selected:
            line.stylize("reverse" if focused else "underline")
        text.append_text(line)
    return text


def status_text(status: AccountStatus, rpc_url: str) -> Text:
    text = Text()
    if status.connected:
        text.append("● connected", style="green")
        text.append(f"  chain {status.chain_id}")
    else:
        text.append("● disconnected", style="red")
    text.append(f"  {rpc_url}", style="dim")
    if status.address:
        text.append(f"  {status.address}")
    if status.balance is not None:
        text.append(f"  {format_units(status.balance, 18, 4)} ETH", style="bold")
    if status.error and not status.connected:
        text.append(f"  {status.error}", style="dim red")
    return text


# -- detail views and clipboard text ------------------------------------------


def _json(document: Any) -> str:
    return json.dumps(document, indent=2, default=str, ensure_ascii=False)


def receipt_detail(card: TransactionCard) -> str:
    outcome = card.outcome
    if outcome is None or outcome.receipt is None:
        return "No receipt yet."
    return _json(outcome.receipt)


def logs_detail(logs: Optional[Sequence[DecodedLog]]) -> str:
    if not logs:
        return "No logs emitted."
    lines: List[str] = []
    for index, entry in enumerate(logs):
        lines.append(f"[{index}] {entry.address or '-'}")
        lines.append(f"    {entry.describe()}")
    return "\n".join(lines)


def result_detail(card: CallCard) -> str:
    outputs = card.function.outputs
    lines = [f"{card.function.signature} @ block {card.block_number}"]
    for index, value in enumerate(card.outputs):
        name = outputs[index].name if index < len(outputs) and outputs[index].name else f"[{index}]"
        scaled = humanize(value, card.decimals)
        suffix = f" ({scaled} at {card.decimals} decimals)" if scaled is not None else ""
        lines.append(f"{name} ({value.type.canonical}) = {render(value)}{suffix}")
    return "\n".join(lines)


def trace_detail(document: Any, logs: Sequence[DecodedLog] = ()) -> str:
    text = _json(document)
    if logs:
        text += "\n\nDecoded logs:\n" + logs_detail(logs)
    return text


def card_plain_text(card: Card) -> str:
    """What ``Copy selection`` puts on the clipboard."""

    if isinstance(card, TransactionCard):
        lines = [f"tx {card.tx_hash} ({card.status.value})", render_call(card.function.name, card.function.inputs, card.inputs)]
        if card.outcome is not None and card.status is not TxStatus.FAILED:
            lines.append(f"block {card.block_number} gas {card.gas_used}")
            lines.extend(entry.describe() for entry in card.outcome.logs)
            if card.revert_reason:
                lines.append(f"revert: {card.revert_reason}")
        elif card.outcome is not None:
            lines.append(f"failed: {card.outcome.failure}")
        return "\n".join(lines)
    if isinstance(card, CallCard):
        return result_detail(card)
    if isinstance(card, LogCard):
        return f"[{card.severity}] {card.message}"
    raise TypeError(f"unknown card: {card!r}")


__all__ = [
    "call_body",
    "card_plain_text",
    "card_renderable",
    "footer_text",
    "log_body",
    "logs_detail",
    "receipt_detail",
    "result_detail",
    "status_text",
    "trace_detail",
    "transaction_body",
    "tree_text",
]
