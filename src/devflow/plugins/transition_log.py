"""Plugin that records every lifecycle event to a log file."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from devflow.hooks.base import Plugin, PluginHookContext, PluginHooks

logger = logging.getLogger(__name__)


class TransitionLogPlugin(Plugin):
    """
    Appends start and transition events to a log file.

    Config options:
        log_file: Path relative to the project (default: .devflow/transitions.log)
        log_format: "text" or "json" (default: "text")
    """

    def __init__(self, config: Optional[dict[str, Any]] = None):
        self.config = config or {}
        self.log_file = self.config.get("log_file", ".devflow/transitions.log")
        self.log_format = self.config.get("log_format", "text")

    @property
    def name(self) -> str:
        return "TransitionLogPlugin"

    @property
    def sequence(self) -> int:
        return 10

    def get_hooks(self) -> PluginHooks:
        return PluginHooks(
            after_start_development=self.after_start_development,
            before_phase_transition=self.before_phase_transition,
        )

    def _path(self, context: PluginHookContext) -> Path:
        path = Path(self.log_file)
        return path if path.is_absolute() else Path(context.project_path) / path

    def _write(self, context: PluginHookContext, event: str, data: dict[str, Any]) -> None:
        path = self._path(context)
        path.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().isoformat()

        if self.log_format == "json":
            line = json.dumps({"timestamp": timestamp, "event": event, **data})
        else:
            details = " ".join(f"{key}={value}" for key, value in data.items())
            line = f"[{timestamp}] {event} | {details}"

        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def after_start_development(self, context: PluginHookContext, args: Any, result: dict) -> None:
        self._write(context, "start_development", {
            "conversation_id": context.conversation_id,
            "workflow": context.workflow,
            "phase": result.get("phase", context.current_phase),
        })

    def before_phase_transition(self, context: PluginHookContext) -> None:
        self._write(context, "phase_transition", {
            "conversation_id": context.conversation_id,
            "from": context.current_phase,
            "to": context.target_phase,
        })
