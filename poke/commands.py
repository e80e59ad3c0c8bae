"""Build one command per interface method plus the fixed utility commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

from .abi_codec import AbiParam
from .error_map import ERR_ARGUMENT_COUNT, ERR_UNKNOWN_COMMAND, UsageError
from .interface import InterfaceDescription, MethodSpec

CALLS_TITLE = "State Reading Calls"
TRANSACTIONS_TITLE = "State-Changing Transactions"
UTILITIES_TITLE = "Utilities"

Handler = Callable[[list[str]], None]


class MethodRunner(Protocol):
    def call(self, method: MethodSpec, args: list[str]) -> None: ...

    def transact(self, method: MethodSpec, args: list[str]) -> None: ...

    def deploy(self, args: list[str]) -> None: ...

    def show_eth(self, args: list[str]) -> None: ...

    def send_eth(self, args: list[str]) -> None: ...

    def show_address(self, args: list[str]) -> None: ...

    def show_gas(self, args: list[str]) -> None: ...

    def code_at(self, args: list[str]) -> None: ...


@dataclass(frozen=True)
class CommandDescriptor:
    name: str
    args: tuple[tuple[str, str], ...]
    short: str
    long: str
    constant: bool
    handler: Handler = field(compare=False, repr=False)
    example: str = ""

    @property
    def usage(self) -> str:
        return " ".join([self.name, *(f"<{label}>" for label, _ in self.args)])

    def run(self, args: Sequence[str]) -> None:
        if len(args) != len(self.args):
            raise UsageError(
                f"{self.name} accepts {len(self.args)} arg(s), received {len(args)}",
                code=ERR_ARGUMENT_COUNT,
                hint=f"usage: {self.usage}",
            )
        self.handler(list(args))


@dataclass(frozen=True)
class CommandListing:
    calls: tuple[CommandDescriptor, ...]
    transactions: tuple[CommandDescriptor, ...]
    utilities: tuple[CommandDescriptor, ...]

    def groups(self) -> list[tuple[str, tuple[CommandDescriptor, ...]]]:
        return [
            (CALLS_TITLE, self.calls),
            (TRANSACTIONS_TITLE, self.transactions),
            (UTILITIES_TITLE, self.utilities),
        ]

    def get(self, name: str) -> CommandDescriptor | None:
        for _, commands in self.groups():
            for command in commands:
                if command.name == name:
                    return command
        return None

    def find(self, name: str) -> CommandDescriptor:
        command = self.get(name)
        if command is not None:
            return command
        raise UsageError(
            f"unknown command {name!r}",
            code=ERR_UNKNOWN_COMMAND,
            hint="run without a command to list the available ones",
        )


def _arg_labels(params: Sequence[AbiParam]) -> tuple[tuple[str, str], ...]:
    return tuple((p.name or p.type, p.type) for p in params)


def summarize_docs(details: str, notice: str) -> tuple[str, str]:
    short = details
    if not short:
        short = notice.split("\n")[0].split(".")[0]
    parts = [text for text in (details, notice) if text]
    return short, "\n\n".join(parts)


def _command_names(description: InterfaceDescription) -> dict[str, str]:
    # Overloads keep the bare name for the first signature and get a numeric
    # suffix after that: transfer, transfer0, transfer1.
    names: dict[str, str] = {}
    seen: dict[str, int] = {}
    for signature in sorted(description.methods):
        method = description.methods[signature]
        count = seen.get(method.name)
        names[signature] = method.name if count is None else f"{method.name}{count}"
        seen[method.name] = 0 if count is None else count + 1
    return names


def _method_command(
    name: str,
    method: MethodSpec,
    description: InterfaceDescription,
    runner: MethodRunner,
) -> CommandDescriptor:
    short, long = summarize_docs(
        description.dev_details.get(method.signature, ""),
        description.user_notices.get(method.signature, ""),
    )

    def handler(args: list[str]) -> None:
        if method.constant:
            runner.call(method, args)
        else:
            runner.transact(method, args)

    return CommandDescriptor(
        name=name,
        args=_arg_labels(method.inputs),
        short=short,
        long=long,
        constant=method.constant,
        handler=handler,
    )


def utility_commands(description: InterfaceDescription, runner: MethodRunner) -> tuple[CommandDescriptor, ...]:
    return (
        CommandDescriptor(
            name="show-eth",
            args=(("address", "address"),),
            short="Show ETH balance.",
            long="",
            constant=True,
            handler=runner.show_eth,
        ),
        CommandDescriptor(
            name="send-eth",
            args=(("address", "address"), ("value", "uint256")),
            short="Send ETH to an address.",
            long="",
            constant=False,
            handler=runner.send_eth,
        ),
        CommandDescriptor(
            name="address",
            args=(),
            short="Get the address corresponding to the `from` account",
            long="",
            constant=True,
            handler=runner.show_address,
            example="  poke address\n  poke address -F @1",
        ),
        CommandDescriptor(
            name="show-gas",
            args=(),
            short="Show the current gas price estimate.",
            long="",
            constant=True,
            handler=runner.show_gas,
        ),
        CommandDescriptor(
            name="deploy",
            args=_arg_labels(description.constructor_inputs),
            short=f"Deploy a new copy of {description.name}",
            long=description.user_notices.get("constructor", ""),
            constant=False,
            handler=runner.deploy,
        ),
        CommandDescriptor(
            name="code-at",
            args=(("address", "address"),),
            short="Get contract code at an address",
            long="",
            constant=True,
            handler=runner.code_at,
        ),
    )


def synthesize(description: InterfaceDescription, runner: MethodRunner) -> CommandListing:
    names = _command_names(description)
    calls: list[CommandDescriptor] = []
    transactions: list[CommandDescriptor] = []
    for signature, method in description.methods.items():
        command = _method_command(names[signature], method, description, runner)
        if method.constant:
            calls.append(command)
        else:
            transactions.append(command)
    calls.sort(key=lambda c: c.name)
    transactions.sort(key=lambda c: c.name)
    return CommandListing(
        calls=tuple(calls),
        transactions=tuple(transactions),
        utilities=utility_commands(description, runner),
    )


def render_listing(listing: CommandListing, *, program: str = "poke") -> str:
    lines = [f"Usage:\n  {program} <file> [command] [args...]"]
    for title, commands in listing.groups():
        if not commands:
            continue
        width = max(len(c.name) for c in commands)
        lines.append("")
        lines.append(f"{title}:")
        for command in commands:
            lines.append(f"  {command.name.ljust(width)} {command.short}".rstrip())
    lines.append("")
    lines.append(f'Use "{program} <file> [command] --help" for more information about a command.')
    return "\n".join(lines)


def render_command_help(command: CommandDescriptor, *, program: str = "poke") -> str:
    lines: list[str] = []
    text = command.long or command.short
    if text:
        lines.extend([text, ""])
    lines.append(f"Usage:\n  {program} <file> {command.usage}")
    if command.example:
        lines.extend(["", "Examples:", command.example])
    return "\n".join(lines)
