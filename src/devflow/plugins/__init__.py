"""Bundled plugins, registered with the hook registry at startup."""

import logging
from typing import Optional

from devflow.backends.detector import TaskBackendInfo
from devflow.hooks.registry import PluginHookRegistry
from devflow.plugins.beads import BeadsPlugin
from devflow.plugins.commit import CommitPlugin
from devflow.plugins.transition_log import TransitionLogPlugin

logger = logging.getLogger(__name__)

DEFAULT_BUILTIN = ("commit", "beads")

__all__ = ["BeadsPlugin", "CommitPlugin", "TransitionLogPlugin", "register_builtin_plugins"]


def register_builtin_plugins(
    registry: PluginHookRegistry,
    backend_info: Optional[TaskBackendInfo] = None,
    config: Optional[dict] = None,
) -> list[str]:
    """
    Register the bundled plugins named in ``config['builtin']``.

    Each plugin decides through ``is_enabled`` whether it applies.

    Args:
        registry: Registry to populate
        backend_info: Detected task backend
        config: Plugin configuration (``enabled``, ``builtin``, and one sub-dict per plugin)

    Returns:
        Names of the plugins that were registered
    """
    config = config or {}
    if not config.get("enabled", True):
        logger.info("Plugin system disabled in configuration")
        return []

    factories = {
        "commit": lambda: CommitPlugin(config.get("commit", {})),
        "beads": lambda: BeadsPlugin(config.get("beads", {}), backend_info=backend_info),
        "transition_log": lambda: TransitionLogPlugin(config.get("transition_log", {})),
    }

    registered = []
    for name in config.get("builtin", DEFAULT_BUILTIN):
        factory = factories.get(name)
        if factory is None:
            logger.warning(f"Unknown builtin plugin '{name}'")
            continue
        plugin = factory()
        if plugin.name in registry.plugin_names():
            continue
        if registry.register_plugin(plugin):
            registered.append(plugin.name)
    return registered
