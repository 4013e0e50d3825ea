"""Tests for the action hook registry."""

import pytest

from arvault.lib.hooks import AFTER_UPLOAD_COMPLETE, HookRegistry, action, do_action, hooks


@pytest.fixture
def registry():
    """Create a fresh HookRegistry for each test."""
    return HookRegistry()


class TestHookRegistry:
    def test_add_action_registers_handler(self, registry):
        registry.add_action("test_action", lambda: None)
        assert registry.has_action("test_action")
        assert not registry.has_action("other")

    async def test_priority_ordering(self, registry):
        call_order = []
        registry.add_action("evt", lambda: call_order.append("late"), priority=20)
        registry.add_action("evt", lambda: call_order.append("early"), priority=5)

        await registry.do_action("evt")

        assert call_order == ["early", "late"]

    async def test_mixed_sync_async_handlers(self, registry):
        calls = []

        async def async_handler(value):
            calls.append(("async", value))

        registry.add_action("evt", lambda value: calls.append(("sync", value)))
        registry.add_action("evt", async_handler)

        await registry.do_action("evt", 42)

        assert calls == [("sync", 42), ("async", 42)]

    async def test_failing_handler_does_not_stop_others(self, registry):
        calls = []

        def broken():
            raise RuntimeError("boom")

        registry.add_action("evt", broken, priority=1)
        registry.add_action("evt", lambda: calls.append("ran"), priority=2)

        await registry.do_action("evt")

        assert calls == ["ran"]

    def test_remove_action(self, registry):
        def handler():
            pass

        registry.add_action("evt", handler)
        assert registry.remove_action("evt", handler) is True
        assert not registry.has_action("evt")
        assert registry.remove_action("evt", handler) is False

    async def test_unknown_action_is_noop(self, registry):
        await registry.do_action("nothing-registered")


class TestDecorator:
    async def test_action_decorator_registers_globally(self, clean_hooks):
        seen = []

        @action(AFTER_UPLOAD_COMPLETE)
        async def on_upload(asset):
            seen.append(asset)

        assert hooks.has_action(AFTER_UPLOAD_COMPLETE)
        await do_action(AFTER_UPLOAD_COMPLETE, "model/1_a.glb")
        assert seen == ["model/1_a.glb"]
