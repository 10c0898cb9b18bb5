from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.text import Text

from workflow_cli.logging_utils import configure_logging
from workflow_cli.rules import (
    ConfigValidationError,
    InputContext,
    InvalidContextError,
    SpanKind,
    evaluate_condition_set_detailed,
    highlight,
    iter_variable_paths,
    load_if_config,
    load_switch_config,
    render_diagnostics,
    resolve_path,
    route_rule_set,
    substitute,
    validate_if_config,
    validate_switch_config,
)
from workflow_cli.rules.values import display_text
from workflow_cli.settings import AppSettings, load_settings


LOGGER = logging.getLogger(__name__)
OPEN_TOKEN_RE = re.compile(r"\{\{\s*([^{}]*)$")


class PlaygroundCompleter(Completer):
    """Completes slash commands, and variable paths after an open ``{{``."""

    def __init__(
        self,
        root_commands_provider: Callable[[], Sequence[str]],
        paths_provider: Callable[[], Sequence[str]],
    ) -> None:
        self._root_commands_provider = root_commands_provider
        self._paths_provider = paths_provider

    def get_completions(self, document, complete_event):  # type: ignore[override]
        text_before_cursor = document.text_before_cursor

        open_token = OPEN_TOKEN_RE.search(text_before_cursor)
        if open_token:
            typed = open_token.group(1)
            for path in self._paths_provider():
                if path.startswith(typed):
                    yield Completion(f"{path}}}}}", start_position=-len(typed), display=path)
            return

        if not text_before_cursor.startswith("/") or " " in text_before_cursor:
            return
        for command in sorted(set(self._root_commands_provider())):
            if command.startswith(text_before_cursor):
                yield Completion(command, start_position=-len(text_before_cursor))


class PlaygroundCLI:
    def __init__(
        self,
        *,
        settings: AppSettings | None = None,
        console: Console | None = None,
        context_path: Path | None = None,
    ) -> None:
        self.console = console or Console(highlight=False)
        self.settings = settings or load_settings()
        self.options = self.settings.evaluation_options()
        self.context = InputContext()
        self.context_path: Path | None = None
        self._prompt_session: PromptSession[str] | None = None

        initial = context_path or self.settings.context_path
        if initial is not None:
            self.load_context(initial)

    def load_context(self, path: Path) -> bool:
        try:
            raw = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            self.console.print(f"Could not load context from {path}: {exc}", markup=False)
            return False
        if not isinstance(raw, dict):
            self.console.print(f"Context file {path} must hold a JSON object of node outputs.")
            return False
        try:
            self.context = InputContext.of(raw)
        except InvalidContextError as exc:
            self.console.print(f"Could not load context from {path}: {exc}", markup=False)
            return False

        self.context_path = Path(path)
        self.console.print(f"Loaded {len(self.context)} node(s) from {path}.")
        return True

    def variable_paths(self) -> list[str]:
        return ["now", *[path for path, _ in iter_variable_paths(self.context)]]

    def render_preview(self, template: str) -> Text:
        preview = Text()
        for span in highlight(template, self.context, builtins=self.options.builtins):
            if span.kind is SpanKind.LITERAL:
                preview.append(span.text)
            else:
                preview.append(span.text, style="bold green" if span.exists else "bold red")
        return preview

    def preview(self, template: str) -> None:
        self.console.print(self.render_preview(template))
        rendered = substitute(template, self.context, builtins=self.options.builtins)
        limit = self.settings.preview_max_chars
        if len(rendered) > limit:
            rendered = rendered[:limit] + "…"
        self.console.print(Text("→ ", style="dim") + Text(rendered))
        self.console.print()

    def handle_command(self, command_line: str) -> bool:
        parts = command_line.strip().split(maxsplit=1)
        command = parts[0].lower()
        argument = parts[1].strip() if len(parts) > 1 else ""

        if command == "/quit":
            self.console.print("Goodbye.")
            return True

        if command == "/context":
            if not argument:
                where = self.context_path or "(none)"
                self.console.print(f"Context: {where} ({len(self.context)} node(s))")
            else:
                self.load_context(Path(argument))
            return False

        if command == "/paths":
            self._print_paths()
            return False

        if command == "/resolve":
            self._resolve(argument)
            return False

        if command == "/if":
            self._run_if(argument)
            return False

        if command == "/switch":
            self._run_switch(argument)
            return False

        if command == "/help":
            self._print_help()
            return False

        self.console.print("Unknown command. Use /help for available commands.")
        return False

    def _print_paths(self) -> None:
        paths = list(iter_variable_paths(self.context))
        if not paths:
            self.console.print("- (no context loaded)")
            return
        for path, value in paths:
            self.console.print(f"- {path}: {display_text(value)[:80]}", markup=False)
        self.console.print()

    def _resolve(self, path: str) -> None:
        if not path:
            self.console.print("Usage: /resolve <path>")
            return
        found = resolve_path(path, self.context, builtins=self.options.builtins)
        if not found.exists:
            self.console.print(Text(f"{path}: not found", style="red"))
            return
        self.console.print(f"{path} = {display_text(found.value)}", markup=False)

    def _read_config(self, raw_path: str) -> dict[str, Any] | None:
        if not raw_path:
            self.console.print("Usage: /if <config.json> or /switch <config.json>")
            return None
        try:
            config = json.loads(Path(raw_path).expanduser().read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            self.console.print(f"Could not read {raw_path}: {exc}", markup=False)
            return None
        if not isinstance(config, dict):
            self.console.print(f"{raw_path} must hold a JSON object.")
            return None
        return config

    def _run_if(self, raw_path: str) -> None:
        config = self._read_config(raw_path)
        if config is None:
            return
        known = list(self.context)
        diagnostics = validate_if_config(config, known_nodes=known, builtins=self.options.builtins)
        if diagnostics:
            self.console.print(render_diagnostics(diagnostics), markup=False)
        try:
            condition_set = load_if_config(config, known_nodes=known, builtins=self.options.builtins)
        except ConfigValidationError:
            self.console.print("If node not evaluated.")
            return

        summary = evaluate_condition_set_detailed(condition_set, self.context, options=self.options)
        for index, outcome in enumerate(summary.outcomes):
            note = f" ({outcome.reason})" if outcome.reason else ""
            self.console.print(f"- [{index}] {outcome.data_type} {outcome.operator}: {outcome.result}{note}", markup=False)
        self.console.print(f"Result ({summary.combine.value}): {summary.result}")
        self.console.print()

    def _run_switch(self, raw_path: str) -> None:
        config = self._read_config(raw_path)
        if config is None:
            return
        known = list(self.context)
        diagnostics = validate_switch_config(config, known_nodes=known, builtins=self.options.builtins)
        if diagnostics:
            self.console.print(render_diagnostics(diagnostics), markup=False)
        try:
            rule_set = load_switch_config(config, known_nodes=known, builtins=self.options.builtins)
        except ConfigValidationError:
            self.console.print("Switch node not evaluated.")
            return

        decision = route_rule_set(rule_set, self.context, options=self.options)
        where = "fallback" if decision.is_fallback else f"rule {decision.matched_index}"
        self.console.print(f"Output: {decision.output_name} ({where})", markup=False)
        self.console.print()

    def _print_help(self) -> None:
        commands = [
            ("/context [file]", "Show or load the upstream node outputs (JSON object)"),
            ("/paths", "List every variable path in the context"),
            ("/resolve <path>", "Resolve one variable path"),
            ("/if <file>", "Validate and evaluate an If node config"),
            ("/switch <file>", "Validate and route a Switch node config"),
            ("/quit", "Exit"),
        ]
        self.console.print("Commands")
        for command, desc in commands:
            self.console.print(f"- {command}: {desc}")
        self.console.print()
        self.console.print("Any other input is rendered as a template: green variables resolved, red ones did not.")
        self.console.print("Typing {{ offers variable path completion.")
        self.console.print()

    def _root_commands(self) -> list[str]:
        return ["/context", "/paths", "/resolve", "/if", "/switch", "/help", "/quit"]

    def _build_prompt_session(self) -> PromptSession[str]:
        key_bindings = KeyBindings()

        @key_bindings.add("escape", "enter")
        def _(event) -> None:
            event.current_buffer.insert_text("\n")

        return PromptSession(
            completer=PlaygroundCompleter(
                root_commands_provider=self._root_commands,
                paths_provider=self.variable_paths,
            ),
            complete_while_typing=True,
            key_bindings=key_bindings,
            history=InMemoryHistory(),
        )

    async def run(self) -> None:
        if self._prompt_session is None:
            self._prompt_session = self._build_prompt_session()
        self.console.print("Template playground. Use /help for commands.")

        with patch_stdout():
            while True:
                try:
                    raw = await self._prompt_session.prompt_async("» ")
                except EOFError:
                    self.console.print("Goodbye.")
                    break
                except KeyboardInterrupt:
                    continue

                user_input = raw.strip()
                if not user_input:
                    continue

                if user_input.startswith("/"):
                    if self.handle_command(user_input):
                        break
                    continue

                self.preview(raw)


def run(argv: Sequence[str] | None = None) -> None:
    configure_logging()
    args = list(argv or [])
    app = PlaygroundCLI(context_path=Path(args[0]) if args else None)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        app.console.print("\nInterrupted. Goodbye.")
