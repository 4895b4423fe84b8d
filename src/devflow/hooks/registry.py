"""Plugin hook registry for lifecycle extension points."""

import importlib
import inspect
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from devflow.hooks.base import (
    CONTENT_HOOKS,
    HookName,
    HookValidationError,
    Plugin,
    PluginHookContext,
    PluginHooks,
)

logger = logging.getLogger(__name__)


class PluginHookRegistry:
    """
    Name-indexed table of lifecycle callbacks.

    Features:
    - Register hook sets by plugin name
    - Load plugins from YAML configuration
    - Invoke hooks in sequence order (registration order for ties)
    - Chain results of content hooks
    - Propagate HookValidationError, log and swallow everything else
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize hook registry.

        Args:
            config: Plugin configuration
        """
        self.config = config or {}
        self._entries: list[tuple[int, int, str, PluginHooks]] = []  # (sequence, order, name, hooks)
        self._counter = 0

    def register(self, name: str, hooks: PluginHooks, sequence: int = 100) -> None:
        """
        Register a set of hooks under a plugin name.

        Args:
            name: Unique plugin name
            hooks: Callbacks to register
            sequence: Execution order (lower = runs first)

        Raises:
            ValueError: If a plugin with this name is already registered
        """
        if name in self.plugin_names():
            raise ValueError(f"Plugin '{name}' is already registered")

        self._entries.append((sequence, self._counter, name, hooks))
        self._counter += 1
        self._entries.sort(key=lambda entry: (entry[0], entry[1]))

        logger.debug(
            f"Registered plugin '{name}' (sequence={sequence}) "
            f"hooks={[h.value for h in hooks.names()]}"
        )

    def register_plugin(self, plugin: Plugin) -> bool:
        """
        Register a plugin if it is enabled.

        Args:
            plugin: Plugin instance

        Returns:
            True if the plugin was registered, False if it is disabled
        """
        if not plugin.is_enabled():
            logger.info(f"Plugin '{plugin.name}' is disabled, skipping")
            return False

        self.register(plugin.name, plugin.get_hooks(), sequence=plugin.sequence)
        logger.info(f"Registered plugin '{plugin.name}' (sequence={plugin.sequence})")
        return True

    def load_from_yaml(self, config_file: str | Path) -> int:
        """
        Load plugins from a YAML configuration file.

        Example file:
            plugins:
              - path: mypackage.plugins:AuditPlugin
                enabled: true
                config:
                  channel: audit

        Args:
            config_file: Path to plugins.yaml

        Returns:
            Number of plugins registered
        """
        path = Path(config_file)
        if not path.exists():
            logger.warning(f"Plugin config file not found: {path}")
            return 0

        try:
            with open(path) as f:
                plugin_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading plugins from {path}: {e}", exc_info=True)
            return 0

        if not plugin_config or "plugins" not in plugin_config:
            logger.warning(f"No plugins found in {path}")
            return 0

        registered = 0
        for spec in plugin_config["plugins"] or []:
            if self._register_plugin_from_spec(spec):
                registered += 1
        return registered

    def _register_plugin_from_spec(self, spec: dict) -> bool:
        """
        Register a plugin from a YAML spec.

        Args:
            spec: Plugin specification with path, enabled and config

        Returns:
            True if the plugin was registered
        """
        if not isinstance(spec, dict):
            logger.warning(f"Invalid plugin spec: {spec!r}")
            return False

        if not spec.get("enabled", True):
            logger.debug(f"Skipping disabled plugin {spec.get('path')}")
            return False

        plugin_path = spec.get("path")
        if not plugin_path or ":" not in plugin_path:
            logger.warning(f"Invalid plugin path format: {plugin_path}")
            return False

        try:
            # Parse path as "module.path:ClassName"
            module_path, class_name = plugin_path.split(":")
            module = importlib.import_module(module_path)
            plugin_class = getattr(module, class_name)
            plugin = plugin_class(config=spec.get("config", {}))
            return self.register_plugin(plugin)
        except Exception as e:
            logger.error(f"Error registering plugin {plugin_path}: {e}", exc_info=True)
            return False

    async def invoke(self, hook_name: HookName | str, context: PluginHookContext, *args: Any) -> Any:
        """
        Invoke every registered callback for a hook.

        Content hooks are chained: the first extra argument is the value to
        transform, and each callback receives the previous callback's result.
        A callback returning None leaves the value unchanged.

        Args:
            hook_name: Hook to invoke
            context: Read-only conversation context
            *args: Hook-specific arguments

        Returns:
            The final value for content hooks, otherwise None

        Raises:
            HookValidationError: If a callback blocks the operation
        """
        hook_name = HookName(hook_name)
        chained = hook_name in CONTENT_HOOKS
        value = args[0] if chained and args else None
        rest = args[1:] if chained else args

        callbacks = [
            (name, hooks.get(hook_name))
            for _, _, name, hooks in self._entries
            if hooks.get(hook_name) is not None
        ]
        if not callbacks:
            logger.debug(f"No plugins registered for hook '{hook_name.value}'")
            return value

        logger.debug(f"Invoking {len(callbacks)} plugins for hook '{hook_name.value}'")

        for name, callback in callbacks:
            try:
                call_args = (context, value, *rest) if chained else (context, *rest)
                result = callback(*call_args)
                if inspect.isawaitable(result):
                    result = await result

                if chained and result is not None:
                    value = result
                    logger.debug(f"Plugin '{name}' modified result of '{hook_name.value}'")

            except HookValidationError as e:
                logger.info(f"Plugin '{name}' blocked '{hook_name.value}': {e}")
                raise
            except Exception as e:
                logger.error(
                    f"Error executing plugin '{name}' for hook '{hook_name.value}': {e}",
                    exc_info=True,
                )
                # Continue with other plugins on error

        return value if chained else None

    def has_hook(self, hook_name: HookName | str) -> bool:
        """Check whether any plugin implements a hook."""
        hook_name = HookName(hook_name)
        return any(hooks.get(hook_name) is not None for _, _, _, hooks in self._entries)

    def plugin_names(self) -> list[str]:
        """Registered plugin names in execution order."""
        return [name for _, _, name, _ in self._entries]

    def clear(self) -> None:
        """Remove every registered plugin."""
        self._entries.clear()
        self._counter = 0
