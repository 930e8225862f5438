"""Chat session: one editable chat document kept in sync with its message store.

The document is the user's editing surface and the message store is the
transcript sent to the model. ``submit`` moves the pending user text from the
document into the store, streams the reply back into the document, and on
completion re-parses the finished reply so both sides agree exactly.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping, Sequence

from ..ai.adapters import STATUS_ERROR, STATUS_SUCCESS, Adapter, AdapterRegistry, ChatOutput
from ..ai.orchestration.request_controller import RequestController, RequestOutcome, RequestState
from ..ai.schema import get_default, resolve_value
from ..ai.tools.executor import JsonToolExecutor, ToolExecutor
from ..ai.tools.registry import ToolRegistry
from ..editor.document_model import ChatDocument
from ..editor.lock import DocumentLock, LockReason, LockState
from ..editor.syntax.markdown import ChatDocumentParser, ChatParseTree, FencedBlock, split_settings
from ..editor.syntax.yaml_json import decode_settings, encode_settings, settings_diagnostics
from ..services.settings import Settings
from ..ui.events import (
    ChatAdapterChanged,
    ChatClosed,
    ChatCreated,
    ChatModelChanged,
    ChatRequestFinished,
    ChatRequestStarted,
    ChatStreamDelivery,
    ChatToolAdded,
    Diagnostic,
    DocumentLockChanged,
    EventBus,
    NoticePosted,
    SettingsDiagnostics,
)
from .errors import (
    AdapterMissing,
    NoMessagesToSubmit,
    ParseUnavailable,
    RequestInProgress,
    SettingsDecodeError,
    ToolExecutionError,
)
from .message_model import LLM_ROLE, SYSTEM_ROLE, USER_ROLE, ChatRole, Message, MessageStore
from .references import (
    ToolReferenceResolver,
    VariableReferenceResolver,
    VariableRegistry,
    builtin_variables,
)

LOGGER = logging.getLogger(__name__)

REGENERATING_TEXT = "_Regenerating response..._"
SYSTEM_PROMPT_TAG = "system_prompt"
TOOL_TAG = "tool"
VARIABLE_TAG = "variable"


@dataclass(slots=True)
class EditorContext:
    """What the host editor knew when the chat was opened."""

    filetype: str = ""
    buffer_name: str = ""
    buffer_text: str = ""
    selection: str | None = None
    cursor: tuple[int, int] | None = None


SubscriberType = Literal["once", "persistent"]


@dataclass(slots=True)
class Subscriber:
    """Callback run after a response cycle ends.

    ``order`` defers the callback until ``cycle >= order``.
    """

    id: Any
    callback: Callable[["ChatSession"], Any]
    type: SubscriberType = "once"
    order: int | None = None

    def is_due(self, cycle: int) -> bool:
        return self.order is None or self.order <= cycle


class ChatSession:
    """Owns a chat document, its message store, and the request in flight."""

    _ids = itertools.count(1)

    def __init__(
        self,
        *,
        adapter: Adapter | str | None = None,
        adapters: AdapterRegistry | None = None,
        settings: Settings | None = None,
        chat_settings: Mapping[str, Any] | None = None,
        messages: Sequence[Mapping[str, Any]] | None = None,
        context: EditorContext | None = None,
        registry: Any = None,
        bus: EventBus | None = None,
        tools: ToolRegistry | None = None,
        tool_executor: ToolExecutor | None = None,
        variables: VariableRegistry | None = None,
        last_role: ChatRole = USER_ROLE,
        tokens: Any = None,
        auto_submit: bool = False,
        insert_selection: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.bus: EventBus = bus if bus is not None else EventBus()
        self._adapters = adapters
        resolved = self._resolve_adapter(adapter if adapter is not None else self.settings.adapter)
        if resolved is None:
            LOGGER.error("No adapter found for %r; chat not created", adapter or self.settings.adapter)
            raise AdapterMissing(adapter or self.settings.adapter)
        self.adapter: Adapter = resolved

        self.id = next(self._ids)
        self.document = ChatDocument(name=f"[Chat] {self.id}", filetype="markdown")
        self.lock = DocumentLock(self.document, on_state_change=self._on_lock_state)
        display = self.settings.display
        self.parser = ChatDocumentParser(
            self.settings.roles,
            separator=display.separator if display.show_header_separator else "",
        )
        self.messages = MessageStore()
        for data in messages or ():
            self.add_message(data, visible=bool(data.get("visible", True)), tag=data.get("tag"))
        self.context = context or EditorContext()
        self.cycle = 0
        self.last_role: ChatRole = last_role
        self.status = ""
        self.tokens = tokens
        self.tools_in_use: dict[str, bool] = {}
        self.subscribers: list[Subscriber] = []
        self.tool_registry = tools if tools is not None else ToolRegistry()
        self.tools = ToolReferenceResolver(self.tool_registry, block_tag=self.settings.tools.block_tag)
        self.tool_executor: ToolExecutor = tool_executor or JsonToolExecutor(
            self.tool_registry, timeout=self.settings.tools.timeout, result_tag=TOOL_TAG
        )
        self.variables = VariableReferenceResolver(variables if variables is not None else builtin_variables())
        self.controller = RequestController(self, lock=self.lock)
        self.current_tool: asyncio.Task[None] | None = None
        self.registry = registry
        self._settings_overrides = dict(chat_settings or {})
        self._settings_cache: dict[str, Any] | None = None
        self._settings_source: str | None = None
        self._insert_selection = insert_selection
        self._closed = False
        self.chat_settings: dict[str, Any] = {}
        self.document.add_listener(self._on_document_changed)

        self.bus.publish(ChatAdapterChanged(self.document.document_id, self.adapter.name))
        self.bus.publish(ChatModelChanged(self.document.document_id, self._model_name()))
        self.apply_settings()
        self.render().set_system_prompt()

        if registry is not None:
            entry = registry.register(self)
            self.bus.publish(ChatCreated(self.id, self.document.document_id, entry.name))
        LOGGER.debug("Chat %s created with adapter %s", self.id, self.adapter.name)
        if auto_submit:
            self.submit()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def document_id(self) -> str:
        return self.document.document_id

    @property
    def current_request(self) -> Any:
        return self.controller.current_request

    @property
    def tool_running(self) -> bool:
        return self.current_tool is not None and not self.current_tool.done()

    @property
    def is_busy(self) -> bool:
        return self.controller.is_active or self.tool_running

    @property
    def closed(self) -> bool:
        return self._closed

    def has_tools(self) -> bool:
        return bool(self.tools_in_use)

    def has_subscribers(self) -> bool:
        return bool(self.subscribers)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def apply_settings(self, settings: Mapping[str, Any] | None = None) -> "ChatSession":
        """Replace the chat's settings; ``None`` restores the schema defaults."""

        self._settings_cache = None
        if settings is not None:
            self.chat_settings = dict(settings)
        else:
            self.chat_settings = get_default(self.adapter.schema, self._settings_overrides)
        return self

    def apply_model(self, model: str) -> "ChatSession":
        if self._settings_cache is not None:
            self._settings_cache["model"] = model
        self.chat_settings["model"] = model
        set_model = getattr(self.adapter, "set_model", None)
        if callable(set_model):
            set_model(model)
        elif "model" in self.adapter.schema:
            self.adapter.schema["model"].default = model
        self.bus.publish(ChatModelChanged(self.document_id, model))
        return self

    def invalidate(self) -> None:
        """Drop the cached settings so the next read re-parses the document."""

        self._settings_cache = None
        self._settings_source = None

    def get_settings(self) -> dict[str, Any]:
        """Settings for the next request.

        With the settings block hidden these are the chat's own settings;
        otherwise the block in the document is decoded and cached until the
        block is edited or :meth:`invalidate` is called. Decode failures are
        reported and yield ``{}``.
        """

        if self._settings_cache is not None:
            return dict(self._settings_cache)
        source: str | None = None
        if not self.settings.display.show_settings:
            values = {key: resolve_value(value, self.adapter) for key, value in self.chat_settings.items()}
        else:
            tree = self._parse()
            if tree is None:
                return {}
            try:
                values = decode_settings(tree.settings).as_dict()
            except SettingsDecodeError as exc:
                LOGGER.error("Failed to parse settings in chat %s: %s", self.id, exc)
                self._notify(exc.message, level="error", code=exc.code)
                return {}
            source = tree.settings.text if tree.settings is not None else None
        self._settings_cache = values
        self._settings_source = source
        return dict(values)

    def _on_document_changed(self, document: ChatDocument) -> None:
        if self._settings_cache is None or not self.settings.display.show_settings:
            return
        block, _ = split_settings(document.lines)
        if (block.text if block is not None else None) != self._settings_source:
            LOGGER.debug("Settings block of chat %s edited; dropping cached settings", self.id)
            self.invalidate()

    def validate_settings(self) -> list[Diagnostic]:
        """Check the settings block against the adapter schema and publish the diagnostics."""

        diagnostics: list[Diagnostic] = []
        tree = self._parse() if self.settings.display.show_settings else None
        if tree is not None:
            try:
                parsed = decode_settings(tree.settings)
            except SettingsDecodeError as exc:
                line = exc.line if exc.line is not None else 0
                lines = self.document.lines
                end_col = len(lines[line]) if line < len(lines) else 0
                diagnostics = [Diagnostic(line, 0, line, end_col, exc.message)]
            else:
                diagnostics = settings_diagnostics(self.adapter.schema, parsed, self.adapter)
        self.bus.publish(SettingsDiagnostics(self.document_id, "settings", diagnostics))
        return diagnostics

    def describe_setting_at(self, line: int) -> Diagnostic | None:
        """INFO diagnostic carrying the description of the setting on ``line``."""

        located = self._setting_at(line)
        if located is None:
            return None
        key, span = located
        entry = self.adapter.schema.get(key)
        if entry is None or not entry.desc:
            return None
        return Diagnostic(
            line=span.start_line,
            col=span.start_col,
            end_line=span.end_line,
            end_col=span.end_col,
            message=entry.desc,
            severity="info",
        )

    def complete_setting_values(self, line: int) -> list[Any]:
        located = self._setting_at(line)
        if located is None:
            return []
        entry = self.adapter.schema.get(located[0])
        if entry is None or entry.type != "enum":
            return []
        return entry.resolve_choices(self.adapter)

    def _setting_at(self, line: int) -> tuple[str, Any] | None:
        tree = self._parse()
        if tree is None or tree.settings is None:
            return None
        try:
            parsed = decode_settings(tree.settings)
        except SettingsDecodeError:
            return None
        key = parsed.key_at(line)
        if key is None or key not in parsed.positions:
            return None
        return key, parsed.positions[key]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def add_message(
        self,
        data: Mapping[str, Any],
        *,
        visible: bool = True,
        tag: str | None = None,
        index: int | None = None,
    ) -> Message:
        return self.messages.append(data["role"], data.get("content") or "", visible=visible, tag=tag, index=index)

    def set_system_prompt(self) -> "ChatSession":
        if not self.settings.system_prompt:
            return self
        prompt = self.settings.resolve_system_prompt({"adapter": self.adapter, "language": self.settings.language})
        if prompt:
            self.messages.append(SYSTEM_ROLE, prompt, visible=False, tag=SYSTEM_PROMPT_TAG, index=0)
        return self

    def toggle_system_prompt(self) -> bool:
        """Remove the system prompt when present, otherwise add it back.

        Returns ``True`` when the prompt is present afterwards.
        """

        first = self.messages.first()
        if first is not None and first.role == SYSTEM_ROLE and first.tag == SYSTEM_PROMPT_TAG:
            self.messages.remove_first_if_role(SYSTEM_ROLE)
            self._notify("Removed system prompt")
            return False
        self.set_system_prompt()
        self._notify("Added system prompt")
        return True

    def add_tool(self, name: str) -> "ChatSession":
        """Make tool ``name`` available to the model for the rest of the chat."""

        if self.tools_in_use.get(name):
            return self
        if not self.has_tools():
            self.add_message(
                {"role": SYSTEM_ROLE, "content": self.settings.tools.system_prompt},
                visible=False,
                tag=TOOL_TAG,
            )
        self.tools_in_use[name] = True
        tool = self.tool_registry.get(name)
        if tool is not None:
            self.add_message(
                {"role": SYSTEM_ROLE, "content": tool.render_system_prompt()},
                visible=False,
                tag=TOOL_TAG,
            )
        else:
            LOGGER.warning("Tool %s is not registered; only the general tool prompt was added", name)
        self.bus.publish(ChatToolAdded(self.document_id, name))
        return self

    def add_variable(self, content: str) -> "ChatSession":
        self.add_message({"role": USER_ROLE, "content": content}, visible=False, tag=VARIABLE_TAG)
        return self

    def apply_tools_and_variables(self, message: Message) -> Message:
        """Resolve ``@tool`` then ``#variable`` references in ``message`` in place."""

        if self.tools.parse(self, message):
            message.update_content(self.tools.replace(message.content))
        if self.variables.parse(self, message):
            message.update_content(self.variables.replace(message.content))
        return message

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------
    def render(self) -> "ChatSession":
        """Rebuild the document from the settings and the visible messages."""

        lines: list[str] = []
        if self.settings.display.show_settings:
            lines.append("---")
            lines.extend(encode_settings(self.adapter.schema, self.chat_settings, self.adapter))
            lines.append("---")
            lines.append("")

        rendered = [message for message in self.messages if message.visible and message.role != SYSTEM_ROLE]
        if not rendered:
            lines.extend(self._header_lines(USER_ROLE))
            lines.append("")
            self.last_role = USER_ROLE
        else:
            last_set_role: str | None = None
            for message in rendered:
                if last_set_role is not None and message.role != last_set_role:
                    lines.append("")
                if message.role != last_set_role:
                    lines.extend(self._header_lines(message.role))
                lines.extend(message.content.strip("\n").split("\n"))
                last_set_role = message.role
            self.last_role = rendered[-1].role

        if self._insert_selection and self.context.selection:
            self._insert_selection = False
            lines.append(f"```{self.context.filetype}")
            lines.extend(self.context.selection.split("\n"))
            lines.append("```")

        self.document.set_text("\n".join(lines), force=True)

        # The pending user message now lives in the document; submit() re-parses it.
        if rendered and rendered[-1].role == USER_ROLE and self.messages.last() is rendered[-1]:
            self.messages.pop()
        return self

    def add_buf_message(
        self,
        data: Mapping[str, Any],
        *,
        insert_at: int | None = None,
        force_role: bool = False,
    ) -> None:
        """Write ``data["content"]`` into the document, opening a role section on a role change."""

        role = data.get("role")
        content = data.get("content")
        lines: list[str] = []
        if (role and role != self.last_role) or force_role:
            self.last_role = role or self.last_role
            lines.extend(["", ""])
            lines.extend(self._header_lines(self.last_role))
        if content is None:
            return
        lines.extend(str(content).split("\n"))
        text = "\n".join(lines)
        if insert_at is not None:
            self.document.insert_text(insert_at, 0, text, force=True)
        else:
            last_line, last_col, _ = self.document.last_position()
            self.document.insert_text(last_line, last_col, text, force=True)
        if self.last_role != USER_ROLE:
            self.document.set_readonly(True)

    def get_codeblock(self, cursor: tuple[int, int] | None = None) -> FencedBlock | None:
        tree = self._parse()
        if tree is None:
            return None
        return tree.find_codeblock(cursor)

    def _header_lines(self, role: str) -> list[str]:
        with_separator = self.settings.display.show_header_separator
        return [self.parser.format_header(role, with_separator=with_separator), ""]

    def _parse(self) -> ChatParseTree | None:
        try:
            return self.parser.parse(self.document.text)
        except ParseUnavailable as exc:
            LOGGER.warning("Chat %s: %s", self.id, exc)
            self._notify(exc.message, level="warning", code=exc.code)
            return None

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------
    def submit(self, *, regenerate: bool = False) -> None:
        """Send the conversation to the adapter and return once the request is dispatched.

        Raises:
            RequestInProgress: A request is streaming or a tool job is still running.
            NoMessagesToSubmit: There is nothing from the user to send.
        """

        if self.is_busy:
            error = RequestInProgress()
            self._notify(error.message, level="warning", code=error.code)
            raise error
        tree = self._parse()
        trailing = tree.trailing_user_content() if tree is not None else None
        if not self.messages.has_user_message(trailing):
            error = NoMessagesToSubmit()
            LOGGER.warning("No messages to submit")
            self._notify(error.message, level="warning", code=error.code)
            raise error

        if not regenerate and trailing:
            message = self.messages.append(USER_ROLE, trailing)
            self.apply_tools_and_variables(message)

        override = self.settings.adapter_override
        if override and override != self.adapter.name:
            replacement = self._resolve_adapter(override)
            if replacement is not None:
                LOGGER.info("Chat %s switching adapter %s -> %s", self.id, self.adapter.name, replacement.name)
                self.adapter = replacement
                self.invalidate()
                self.bus.publish(ChatAdapterChanged(self.document_id, replacement.name))

        settings = self.get_settings()
        params = self.adapter.map_schema_to_params(settings)
        transcript = self.adapter.map_roles(self.messages.as_transcript())
        LOGGER.debug("Settings:\n%s", settings)
        LOGGER.debug("Messages:\n%s", self.messages.as_transcript())
        LOGGER.info("Chat request started")

        self.cycle += 1
        self.status = ""
        self.bus.publish(ChatRequestStarted(self.document_id, self.cycle, len(self.messages)))
        self.controller.start(self.adapter, transcript, params=params, cycle=self.cycle)

    def regenerate(self) -> bool:
        """Drop the last assistant reply and ask for a new one."""

        last = self.messages.last()
        if last is None or last.role != LLM_ROLE:
            return False
        if self.is_busy:
            raise RequestInProgress()
        self.messages.remove_last_if_role(LLM_ROLE)
        self.add_buf_message({"role": USER_ROLE, "content": REGENERATING_TEXT})
        self.submit(regenerate=True)
        return True

    def stop(self) -> bool:
        """Cancel the running tool job and the request in flight. Idempotent."""

        stopped = False
        tool = self.current_tool
        if tool is not None:
            self.current_tool = None
            if not tool.done():
                tool.cancel()
                stopped = True
        if self.controller.stop():
            stopped = True
        return stopped

    async def wait_idle(self) -> None:
        """Wait until no request and no tool job is running."""

        while True:
            if self.controller.is_active:
                await self.controller.wait()
                continue
            tool = self.current_tool
            if tool is not None and not tool.done():
                await asyncio.wait({tool})
                continue
            return

    def reset(self) -> None:
        if self.lock.state is LockState.UNLOCKED:
            self.document.set_readonly(False)

    # ResponseSink ------------------------------------------------------
    def on_delivery(self, output: ChatOutput) -> None:
        self.status = STATUS_SUCCESS
        role = LLM_ROLE if output.role else None
        self.add_buf_message({"role": role, "content": output.content})
        self.bus.publish(ChatStreamDelivery(self.document_id, output.content))

    def on_tokens(self, tokens: Any) -> None:
        self.tokens = tokens

    def on_finished(self, outcome: RequestOutcome) -> None:
        tree: ChatParseTree | None = None
        if outcome.state is RequestState.COMPLETED:
            tree = self._commit_response()
        elif outcome.state is RequestState.FAILED:
            self.status = STATUS_ERROR
            if outcome.error is not None:
                self._notify(outcome.error.message, level="error", code=outcome.error.code)
        else:
            LOGGER.info("Chat request cancelled")

        self.add_buf_message({"role": USER_ROLE, "content": ""})

        if self.status == STATUS_SUCCESS and self.has_tools() and tree is not None:
            self._dispatch_tools(tree)

        self.bus.publish(
            ChatRequestFinished(
                self.document_id,
                outcome.cycle,
                outcome.state.value,
                outcome.error.message if outcome.error else None,
            )
        )
        LOGGER.info("Chat request %s", outcome.state.value)
        self.reset()
        self._fire_subscribers()

    def _commit_response(self) -> ChatParseTree | None:
        tree = self._parse()
        if tree is None:
            return None
        section = tree.last_section()
        if section is None or section.role != LLM_ROLE or section.is_blank:
            LOGGER.warning("Chat %s: request completed without an assistant response", self.id)
            return tree
        self.messages.append(LLM_ROLE, section.content)
        return tree

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------
    def _dispatch_tools(self, tree: ChatParseTree) -> None:
        payloads = [block.content for block in self.tools.invocations(tree)]
        LOGGER.debug("Tool blocks detected: %s", len(payloads))
        if not payloads:
            return
        self.current_tool = asyncio.get_running_loop().create_task(self._run_tools(payloads))

    async def _run_tools(self, payloads: list[str]) -> None:
        lock_session = self.lock.acquire(LockReason.TOOL_RUN, metadata={"tools": len(payloads)})
        try:
            for payload in payloads:
                try:
                    await self.tool_executor.execute(payload, self)
                except ToolExecutionError as exc:
                    LOGGER.warning("Tool execution failed: %s", exc)
                    self._notify(exc.message, level="error", code=exc.code)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    error = ToolExecutionError(str(exc) or type(exc).__name__, cause=exc)
                    LOGGER.exception("Tool executor raised")
                    self._notify(error.message, level="error", code=error.code)
        finally:
            if lock_session is not None:
                self.lock.release(lock_session.session_id)
            if self.current_tool is asyncio.current_task():
                self.current_tool = None

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------
    def subscribe(
        self,
        callback: Callable[["ChatSession"], Any],
        *,
        type: SubscriberType = "once",
        order: int | None = None,
        id: Any = None,
    ) -> Subscriber:
        subscriber = Subscriber(
            id=id if id is not None else f"sub-{self.id}-{len(self.subscribers) + 1}-{next(self._ids)}",
            callback=callback,
            type=type,
            order=order,
        )
        self.subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber_id: Any) -> bool:
        before = len(self.subscribers)
        self.subscribers = [item for item in self.subscribers if item.id != subscriber_id]
        return len(self.subscribers) != before

    def _fire_subscribers(self) -> None:
        for subscriber in list(self.subscribers):
            if not subscriber.is_due(self.cycle):
                continue
            try:
                subscriber.callback(self)
            except Exception:
                LOGGER.exception("Subscriber %s failed", subscriber.id)
            if subscriber.type == "once":
                self.unsubscribe(subscriber.id)

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------
    def focus(self) -> None:
        if self.registry is not None:
            self.registry.mark_active(self)

    def clear(self) -> "ChatSession":
        self.messages.clear()
        self.tools_in_use.clear()
        self.tokens = None
        LOGGER.debug("Clearing chat %s", self.id)
        return self.render().set_system_prompt()

    def debug(self) -> tuple[dict[str, Any], list[Message]] | None:
        if not self.messages:
            return None
        return self.get_settings(), self.messages.snapshot()

    def close(self) -> None:
        if self._closed:
            return
        self.stop()
        if self.registry is not None:
            self.registry.unregister(self)
        self._closed = True
        self.bus.publish(ChatClosed(self.document_id))
        self.bus.publish(ChatAdapterChanged(self.document_id, None))
        self.bus.publish(ChatModelChanged(self.document_id, None))
        LOGGER.debug("Chat %s closed", self.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _resolve_adapter(self, spec: Any) -> Adapter | None:
        if self._adapters is not None:
            return self._adapters.resolve(spec)
        if spec is None or isinstance(spec, str):
            return None
        return spec if isinstance(spec, Adapter) else None

    def _model_name(self) -> str | None:
        entry = self.adapter.schema.get("model")
        if entry is None:
            return None
        model = entry.resolve_default(self.adapter)
        return str(model) if model is not None else None

    def _notify(self, message: str, *, level: str = "info", code: str | None = None) -> None:
        self.bus.publish(NoticePosted(message, level=level, document_id=self.document_id, code=code))

    def _on_lock_state(self, state: LockState, reason: Any) -> None:
        self.bus.publish(DocumentLockChanged(self.document_id, state is LockState.LOCKED))

    def __repr__(self) -> str:
        return f"<ChatSession id={self.id} adapter={self.adapter.name!r} messages={len(self.messages)}>"
