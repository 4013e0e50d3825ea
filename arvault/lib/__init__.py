from arvault.lib.hooks import action, do_action, hooks

__all__ = ["action", "do_action", "hooks"]
