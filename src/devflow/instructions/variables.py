"""Variable substitution for instruction text."""

import re
from pathlib import Path
from typing import Optional

from devflow.workflows.config import PROJECT_DIR

DOCS_DIR = f"{PROJECT_DIR}/docs"

DOCUMENT_VARIABLES = {
    "ARCHITECTURE_DOC": "architecture.md",
    "REQUIREMENTS_DOC": "requirements.md",
    "DESIGN_DOC": "design.md",
}
ROLE_VARIABLE = "ROLE"


class VariableResolver:
    """
    Replaces ``$NAME`` tokens in instruction text.

    Recognized tokens are the project document paths and ``$ROLE``. A
    recognized token without a value becomes an empty string. Unrecognized
    ``$`` words are left untouched.
    """

    def __init__(
        self,
        project_path: str | Path,
        role: Optional[str] = None,
        extra: Optional[dict[str, str]] = None,
    ):
        """
        Initialize resolver.

        Args:
            project_path: Project root the document paths are relative to
            role: Caller's collaboration role
            extra: Additional NAME -> value substitutions
        """
        docs = Path(project_path) / DOCS_DIR
        self.values: dict[str, str] = {
            name: str(docs / filename) for name, filename in DOCUMENT_VARIABLES.items()
        }
        self.values[ROLE_VARIABLE] = role or ""
        if extra:
            self.values.update({key.lstrip("$"): value or "" for key, value in extra.items()})

        # Longest names first so $DESIGN_DOC never matches a shorter $DESIGN
        names = sorted(self.values, key=len, reverse=True)
        self._pattern = re.compile(r"\$(" + "|".join(re.escape(n) for n in names) + r")(?![A-Za-z0-9_])")

    def substitute(self, text: str) -> str:
        return self._pattern.sub(lambda m: self.values.get(m.group(1)) or "", text)

    def as_dict(self) -> dict[str, str]:
        return {f"${name}": value for name, value in self.values.items()}
