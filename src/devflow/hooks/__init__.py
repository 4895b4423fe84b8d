"""Plugin hook system."""

from devflow.hooks.base import (
    HookName,
    HookValidationError,
    Plugin,
    PluginHookContext,
    PluginHooks,
    StartDevelopmentArgs,
)
from devflow.hooks.registry import PluginHookRegistry

__all__ = [
    "HookName",
    "HookValidationError",
    "Plugin",
    "PluginHookContext",
    "PluginHookRegistry",
    "PluginHooks",
    "StartDevelopmentArgs",
]
