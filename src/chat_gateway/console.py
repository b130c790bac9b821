from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from chat_gateway.catalog import MODES, ModelCatalog
from chat_gateway.commands.router import CommandRouter
from chat_gateway.errors import QuotaExceeded
from chat_gateway.events import SSE_HEADERS, Completed, Failed, SessionStarted, Token
from chat_gateway.orchestrator import ChatOrchestrator, ChatRequest
from chat_gateway.quota import start_of_month
from chat_gateway.storage import PolicyStore, UsageLedger


class ConsoleChat:
    _LINE_PREFIX = "assistant> "

    def __init__(
        self,
        *,
        orchestrator: ChatOrchestrator,
        catalog: ModelCatalog,
        ledger: UsageLedger,
        policies: PolicyStore,
        account_id: str,
        role: str,
        model: str,
        mode: str = "auto",
        raw_sse: bool = False,
        write: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._orchestrator = orchestrator
        self._catalog = catalog
        self._ledger = ledger
        self._policies = policies
        self._account_id = account_id
        self._role = role
        self._model = model
        self._mode = mode
        self._raw_sse = raw_sse
        self._write = write or (lambda text: print(text, end="", flush=True))
        self._clock = clock
        self.session_id: str | None = None

        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_model=self._on_model,
            on_mode=self._on_mode,
            on_new=self._on_new,
            on_usage=self._on_usage,
            on_limits=self._on_limits,
            on_unknown=self._on_unknown,
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def mode(self) -> str:
        return self._mode

    async def run(self, user_message: str) -> None:
        if await self._command_router.try_handle(user_message):
            return

        request = ChatRequest(
            account_id=self._account_id,
            role=self._role,
            message=user_message,
            model=self._model,
            mode=self._mode,
            session_id=self.session_id,
        )
        try:
            stream = self._orchestrator.admit(request)
        except QuotaExceeded as ex:
            reset = ex.decision.reset_at.strftime("%Y-%m-%d %H:%M") if ex.decision.reset_at else "unknown"
            self._line(f"[{ex}. Resets at {reset}.]")
            return

        if self._raw_sse:
            self._write("".join(f"{name}: {value}\n" for name, value in SSE_HEADERS.items()) + "\n")
            async for frame in stream.sse():
                self._write(frame)
            self.session_id = stream.session_id
            return

        self._write(self._LINE_PREFIX)
        async for event in stream.events():
            if isinstance(event, SessionStarted):
                self.session_id = event.conversation_id
            elif isinstance(event, Token):
                self._write(event.text)
            elif isinstance(event, Completed):
                self._write("\n")
                self._line(f"[tokens: {event.tokens:,}, cost: {event.cost}c]")
            elif isinstance(event, Failed):
                self._write("\n")
                self._line(f"[Error: {event.message}]")

    def _line(self, text: str) -> None:
        self._write(f"{self._LINE_PREFIX}{text}\n")

    async def _on_help(self) -> None:
        self._line("Commands:")
        self._line("  /model <name>  switch model (" + ", ".join(self._catalog.models()) + ")")
        self._line("  /mode <mode>   switch mode (" + ", ".join(MODES) + ")")
        self._line("  /new           start a new conversation")
        self._line("  /usage         usage this month")
        self._line("  /limits        rate limits for your role")

    async def _on_model(self, argument: str) -> None:
        if not argument:
            self._line(f"Current model: {self._model}")
            return
        if self._catalog.get(argument) is None:
            self._line(f"Unknown model: {argument}")
            return
        self._model = argument
        self._line(f"Model set to {argument} ({self._catalog.variant(argument).value} api)")

    async def _on_mode(self, argument: str) -> None:
        mode = argument.lower()
        if mode not in MODES:
            self._line(f"Unknown mode: {argument or '(none)'}. Choose one of: {', '.join(MODES)}")
            return
        self._mode = mode
        self._line(f"Mode set to {mode}")

    async def _on_new(self) -> None:
        self.session_id = None
        self._line("Started a new conversation")

    async def _on_usage(self) -> None:
        since = start_of_month(self._clock()).date()
        rows = self._ledger.usage_summary(self._account_id, since)
        if not rows:
            self._line(f"No usage since {since.isoformat()}")
            return
        self._line(f"Usage since {since.isoformat()}:")
        for row in rows:
            self._line(
                f"- {row['model']}: {row['messages']} messages, "
                f"{row['tokens_used']:,} tokens, {row['cost_cents']}c"
            )

    async def _on_limits(self) -> None:
        policies = self._policies.list_policies(role=self._role)
        if not policies:
            self._line(f"No rate limits configured for role {self._role}")
            return
        for policy in policies:
            daily = policy.daily_request_limit or "unlimited"
            monthly = f"{policy.monthly_token_limit:,}" if policy.monthly_token_limit else "unlimited"
            self._line(f"- {policy.model}: {daily} requests/day, {monthly} tokens/month")

    def _on_unknown(self, command: str) -> None:
        self._line(f"Unknown command: {command}. Type /help for commands.")
