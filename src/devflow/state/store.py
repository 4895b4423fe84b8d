"""File-backed conversation storage.

Layout under the project root::

    .devflow/conversations/<conversation_id>/state.json
    .devflow/conversations/<conversation_id>/interactions.jsonl
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Optional

from devflow.fileio import atomic_write_text
from devflow.state.conversation import ConversationState, InteractionLog

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
INTERACTIONS_FILE = "interactions.jsonl"


class ConversationStore:
    """Reads and writes conversation records, one directory per conversation.

    State records are replaced whole via an atomic rename. A record that
    cannot be parsed is treated as absent.
    """

    def __init__(self, base_dir: str | Path):
        """
        Initialize conversation store.

        Args:
            base_dir: Directory holding one subdirectory per conversation
        """
        self.base_dir = Path(base_dir)

    def _conversation_dir(self, conversation_id: str) -> Path:
        return self.base_dir / conversation_id

    def state_path(self, conversation_id: str) -> Path:
        return self._conversation_dir(conversation_id) / STATE_FILE

    def interactions_path(self, conversation_id: str) -> Path:
        return self._conversation_dir(conversation_id) / INTERACTIONS_FILE

    def save_state(self, state: ConversationState) -> None:
        """Persist a conversation state record."""
        path = self.state_path(state.conversation_id)
        atomic_write_text(path, json.dumps(state.to_dict(), indent=2))
        logger.debug(f"Saved conversation {state.conversation_id} (phase={state.current_phase})")

    def load_state(self, conversation_id: str) -> Optional[ConversationState]:
        """
        Load a conversation state record.

        Args:
            conversation_id: Conversation identifier

        Returns:
            ConversationState, or None if missing or unreadable
        """
        path = self.state_path(conversation_id)
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return ConversationState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring corrupted conversation state {path}: {e}")
            return None

    def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation's state and interaction history.

        Returns:
            True if anything was deleted
        """
        directory = self._conversation_dir(conversation_id)
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        logger.info(f"Deleted conversation {conversation_id}")
        return True

    def append_interaction(self, log: InteractionLog) -> None:
        """Append one interaction to the conversation's log."""
        path = self.interactions_path(log.conversation_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(log.to_dict(), default=str) + "\n")

    def load_interactions(self, conversation_id: str) -> list[InteractionLog]:
        """Load a conversation's interactions in the order they were logged."""
        path = self.interactions_path(conversation_id)
        if not path.exists():
            return []

        logs = []
        with open(path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    logs.append(InteractionLog.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping malformed interaction at {path}:{line_number}: {e}")
        return logs

    def has_interactions(self, conversation_id: str) -> bool:
        path = self.interactions_path(conversation_id)
        return path.exists() and path.stat().st_size > 0

    def list_conversations(self) -> list[str]:
        """Identifiers of all stored conversations."""
        if not self.base_dir.exists():
            return []
        return sorted(p.name for p in self.base_dir.iterdir() if (p / STATE_FILE).exists())
