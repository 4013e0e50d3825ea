"""Async action hooks for upload lifecycle side effects.

Notification senders, analytics and conversion jobs subscribe here
instead of being wired into the upload path::

    from arvault.lib.hooks import AFTER_UPLOAD_COMPLETE, action

    @action(AFTER_UPLOAD_COMPLETE)
    async def email_owner(asset):
        ...

Handlers run in priority order (lower first). Actions fired after the
primary write are best-effort: a failing handler is logged and the
remaining handlers still run.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

AFTER_UPLOAD_COMPLETE = "after_upload_complete"
AFTER_ASSET_DELETE = "after_asset_delete"
COMPANION_LINKED = "companion_linked"
COMPANION_SUGGESTED = "companion_suggested"


@dataclass(order=True)
class HookHandler:
    """A registered handler with priority."""

    priority: int
    callback: Callable = field(compare=False)

    async def call(self, *args: Any, **kwargs: Any) -> Any:
        result = self.callback(*args, **kwargs)
        if asyncio.iscoroutine(result):
            return await result
        return result


class HookRegistry:
    """Registry of named actions."""

    def __init__(self) -> None:
        self._actions: dict[str, list[HookHandler]] = defaultdict(list)

    def add_action(self, name: str, callback: Callable, priority: int = 10) -> None:
        self._actions[name].append(HookHandler(priority, callback))
        self._actions[name].sort()

    def remove_action(self, name: str, callback: Callable) -> bool:
        handlers = self._actions.get(name, [])
        for handler in handlers:
            if handler.callback is callback:
                handlers.remove(handler)
                return True
        return False

    def has_action(self, name: str) -> bool:
        return bool(self._actions.get(name))

    async def do_action(self, name: str, *args: Any, **kwargs: Any) -> None:
        """Run every handler for *name*; failures are logged, never raised."""
        for handler in list(self._actions.get(name, [])):
            try:
                await handler.call(*args, **kwargs)
            except Exception:
                logger.exception("Hook handler for %s failed", name)


hooks = HookRegistry()


def action(name: str, priority: int = 10) -> Callable:
    """Decorator registering a function as an action handler."""

    def decorator(func: Callable) -> Callable:
        hooks.add_action(name, func, priority)
        return func

    return decorator


async def do_action(name: str, *args: Any, **kwargs: Any) -> None:
    await hooks.do_action(name, *args, **kwargs)
