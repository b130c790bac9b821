from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_model: Callable[[str], Awaitable[None]],
        on_mode: Callable[[str], Awaitable[None]],
        on_new: Callable[[], Awaitable[None]],
        on_usage: Callable[[], Awaitable[None]],
        on_limits: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_model = on_model
        self._on_mode = on_mode
        self._on_new = on_new
        self._on_usage = on_usage
        self._on_limits = on_limits
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, argument = trimmed.partition(" ")
        argument = argument.strip()

        if command == "/help":
            await self._on_help()
            return True
        if command == "/model":
            await self._on_model(argument)
            return True
        if command == "/mode":
            await self._on_mode(argument)
            return True
        if command == "/new":
            await self._on_new()
            return True
        if command == "/usage":
            await self._on_usage()
            return True
        if command == "/limits":
            await self._on_limits()
            return True

        self._on_unknown(trimmed)
        return True
