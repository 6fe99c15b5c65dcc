"""Modal popups pushed over the main evmdeck screen."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Input, Label, OptionList, Static
from textual.widgets.option_list import Option

from ..core.abi_types import Address
from ..core.codec import encode
from ..core.commands import CommandPalette
from ..core.contract_manager import BytecodeTarget, FunctionDescriptor
from ..core.errors import ConfigurationError, FormValidationError, ValidationError
from ..core.trace import TraceRequest, TraceWizard

DIALOG_CSS = """
{name} {{
    align: center middle;
}}
{name} > Vertical {{
    width: 80;
    height: auto;
    max-height: 90%;
    padding: 1 2;
    border: heavy $accent;
    background: $surface;
}}
{name} .error {{
    color: $error;
}}
{name} .hint {{
    color: $text-muted;
}}
"""


def _css(name: str) -> str:
    return DIALOG_CSS.format(name=name)


class ParameterForm(ModalScreen[object]):
    """One input per parameter; ``build`` turns the raw strings into a request.

    ``build`` raises :class:`FormValidationError` to keep the form open with
    every failing field marked.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("ctrl+s", "submit", "Submit"),
        Binding("ctrl+t", "toggle_target", "EVM/PVM", show=False),
    ]
    CSS = _css("ParameterForm")

    def __init__(
        self,
        function: FunctionDescriptor,
        build: Callable[[List[str], BytecodeTarget, int], object],
        *,
        title: Optional[str] = None,
        values: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self.function = function
        self._build = build
        self._title = title or function.label
        self._values = list(values)
        self.target = BytecodeTarget.EVM

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._title)
            for index, param in enumerate(self.function.inputs):
                value = self._values[index] if index < len(self._values) else ""
                yield Label(param.label, classes="hint")
                yield Input(value=value, placeholder=param.type.canonical, id=f"param-{index}")
                yield Static("", id=f"error-{index}", classes="error")
            if self.function.is_payable:
                yield Label("value (wei)", classes="hint")
                yield Input(value="0", id="param-value")
                yield Static("", id="error-value", classes="error")
            if self.function.is_constructor:
                yield Static(self._target_text(), id="target")
            yield Static("Enter/Ctrl+S submit  Esc cancel", classes="hint")

    def on_mount(self) -> None:
        inputs = self.query(Input)
        if inputs:
            inputs.first().focus()

    def _target_text(self) -> str:
        return f"Bytecode target: {self.target.label} (Ctrl+T to switch)"

    def action_toggle_target(self) -> None:
        if self.function.is_constructor:
            self.target = self.target.toggle()
            self.query_one("#target", Static).update(self._target_text())

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.action_submit()

    def raw_values(self) -> List[str]:
        return [self.query_one(f"#param-{index}", Input).value for index in range(len(self.function.inputs))]

    def _value(self) -> Optional[int]:
        if not self.function.is_payable:
            return 0
        text = self.query_one("#param-value", Input).value.strip() or "0"
        error = self.query_one("#error-value", Static)
        if not text.isdigit():
            error.update("value must be a whole number of wei")
            return None
        error.update("")
        return int(text)

    def action_submit(self) -> None:
        for index in range(len(self.function.inputs)):
            self.query_one(f"#error-{index}", Static).update("")
        value = self._value()
        if value is None:
            return
        try:
            request = self._build(self.raw_values(), self.target, value)
        except FormValidationError as exc:
            for index, error in exc.errors.items():
                self.query_one(f"#error-{index}", Static).update(str(error))
            return
        self.dismiss(request)


class AddressInput(ModalScreen[Optional[str]]):
    BINDINGS = [Binding("escape", "cancel", "Cancel")]
    CSS = _css("AddressInput")

    def __init__(self, title: str = "Contract address") -> None:
        super().__init__()
        self._title = title

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._title)
            yield Input(placeholder="0x…", id="address")
            yield Static("", id="error", classes="error")

    def on_mount(self) -> None:
        self.query_one(Input).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        try:
            value = encode(Address(), event.value.strip())
        except ValidationError as exc:
            self.query_one("#error", Static).update(str(exc))
            return
        self.dismiss(value.data)


class FilePicker(ModalScreen[Optional[Path]]):
    BINDINGS = [Binding("escape", "cancel", "Cancel")]
    CSS = _css("FilePicker")

    def __init__(self, title: str = "Solidity source file", suffix: str = ".sol") -> None:
        super().__init__()
        self._title = title
        self._suffix = suffix

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._title)
            yield Input(placeholder=f"path/to/Contract{self._suffix}", id="path")
            yield Static("", id="error", classes="error")

    def on_mount(self) -> None:
        self.query_one(Input).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        path = Path(event.value.strip()).expanduser()
        error = self.query_one("#error", Static)
        if not path.is_file():
            error.update(f"{path} does not exist")
            return
        if path.suffix != self._suffix:
            error.update(f"expected a {self._suffix} file")
            return
        self.dismiss(path.resolve())


class _ChoiceScreen(ModalScreen[Optional[str]]):
    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, title: str, choices: Sequence[Tuple[str, str]]) -> None:
        super().__init__()
        self._title = title
        self._choices = list(choices)

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._title)
            yield OptionList(*[Option(label, id=choice_id) for choice_id, label in self._choices])

    def on_mount(self) -> None:
        self.query_one(OptionList).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self.dismiss(event.option.id)


class ContractSelector(_ChoiceScreen):
    """Pick one contract out of a multi-contract source file, or all of them."""

    ALL = "*"
    CSS = _css("ContractSelector")

    def __init__(self, names: Sequence[str]) -> None:
        choices = [(self.ALL, "All contracts")] + [(name, name) for name in names]
        super().__init__("Select contract", choices)


class TracerSelect(_ChoiceScreen):
    CSS = _css("TracerSelect")

    def __init__(self) -> None:
        super().__init__("Select tracer", [(kind.value, kind.label) for kind in TraceWizard.KINDS])


class ConfirmDialog(ModalScreen[bool]):
    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("n", "cancel", "No"),
        Binding("enter", "confirm", "Yes"),
        Binding("y", "confirm", "Yes"),
    ]
    CSS = _css("ConfirmDialog")

    def __init__(self, title: str, message: str) -> None:
        super().__init__()
        self._title = title
        self._message = message

    def compose(self) -> ComposeResult:
        yield Vertical(Label(self._title), Static(self._message), Static("Enter/Y=confirm  Esc/N=cancel", classes="hint"))

    def action_cancel(self) -> None:
        self.dismiss(False)

    def action_confirm(self) -> None:
        self.dismiss(True)


class TracerConfigScreen(ModalScreen[object]):
    """Boolean options of the chosen tracer.

    Dismisses with the :class:`TraceRequest`, with ``None`` when cancelled
    or with :attr:`BACK` to return to tracer selection.
    """

    BACK = "back"
    BINDINGS = [
        Binding("escape", "back", "Back"),
        Binding("ctrl+s", "submit", "Trace"),
    ]
    CSS = _css("TracerConfigScreen")

    def __init__(self, wizard: TraceWizard, confirm: Callable[[], TraceRequest]) -> None:
        super().__init__()
        self.wizard = wizard
        self._confirm = confirm

    def compose(self) -> ComposeResult:
        form = self.wizard.form
        with Vertical():
            yield Label(f"{form.kind.label} options" if form else "Tracer options")
            if form is not None:
                for name, value in form.values.items():
                    with Horizontal():
                        yield Label(f"{name}: ")
                        yield Input(value="true" if value else "false", id=f"opt-{name}")
                    yield Static("", id=f"error-{name}", classes="error")
                if not form.names:
                    yield Static("This tracer takes no options.", classes="hint")
            yield Static("Enter/Ctrl+S trace  Esc back", classes="hint")

    def on_mount(self) -> None:
        inputs = self.query(Input)
        if inputs:
            inputs.first().focus()

    def action_back(self) -> None:
        self.wizard.back()
        self.dismiss(self.BACK)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.action_submit()

    def action_submit(self) -> None:
        form = self.wizard.form
        if form is None:
            return
        raw: Dict[str, str] = {name: self.query_one(f"#opt-{name}", Input).value for name in form.names}
        form.update(raw)
        for name in form.names:
            self.query_one(f"#error-{name}", Static).update(form.errors.get(name, ""))
        try:
            request = self._confirm()
        except ConfigurationError:
            return
        self.dismiss(request)


class DetailViewer(ModalScreen[None]):
    BINDINGS = [Binding("escape", "close", "Close"), Binding("q", "close", "Close")]
    CSS = _css("DetailViewer") + """
DetailViewer > Vertical {
    width: 90%;
    height: 90%;
}
"""

    def __init__(self, title: str, body: str) -> None:
        super().__init__()
        self._title = title
        self._body = body

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._title)
            with VerticalScroll():
                yield Static(self._body, markup=False)
            yield Static("Esc/Q close", classes="hint")

    def action_close(self) -> None:
        self.dismiss(None)


class CommandPaletteScreen(ModalScreen[Optional[str]]):
    """Filter-as-you-type command list; dismisses with the command id."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("down", "move(1)", "Next", show=False),
        Binding("up", "move(-1)", "Previous", show=False),
    ]
    CSS = _css("CommandPaletteScreen")

    def __init__(self, palette: CommandPalette) -> None:
        super().__init__()
        self.palette = palette

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Input(value=self.palette.query, placeholder="Type a command…", id="query")
            yield OptionList(id="commands")

    def on_mount(self) -> None:
        self._refresh()
        self.query_one(Input).focus()

    def _refresh(self) -> None:
        options = self.query_one(OptionList)
        options.clear_options()
        for command in self.palette.matches:
            label = command.name if not command.shortcut else f"{command.name}  [{command.shortcut}]"
            options.add_option(Option(f"{label}\n  {command.description}", id=command.id))
        if self.palette.matches:
            options.highlighted = self.palette.selected

    def on_input_changed(self, event: Input.Changed) -> None:
        self.palette.set_query(event.value)
        self._refresh()

    def action_move(self, delta: int) -> None:
        self.palette.move(delta)
        if self.palette.matches:
            self.query_one(OptionList).highlighted = self.palette.selected

    def on_input_submitted(self, event: Input.Submitted) -> None:
        command = self.palette.current
        self.dismiss(command.id if command else None)

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self.dismiss(event.option.id)

    def action_cancel(self) -> None:
        self.dismiss(None)


__all__ = [
    "AddressInput",
    "CommandPaletteScreen",
    "ConfirmDialog",
    "ContractSelector",
    "DetailViewer",
    "FilePicker",
    "ParameterForm",
    "TracerConfigScreen",
    "TracerSelect",
]
