"""Strategies for inferring a phase change from free text."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from devflow.workflows.models import Transition, WorkflowDefinition

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9]+")

# Words too common in trigger names and descriptions to carry signal
STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has", "have",
    "in", "is", "it", "need", "needs", "of", "on", "or", "phase", "the", "this",
    "to", "we", "with", "more", "work", "continue", "ready", "now",
})

# Words meaning the current step is finished
COMPLETION_WORDS = frozenset({
    "complete", "completed", "done", "finished", "ready", "approved", "signed",
})


@dataclass
class TransitionSignals:
    """Free-form text the caller reports about the conversation."""

    context: str = ""
    user_input: str = ""
    conversation_summary: str = ""
    recent_messages: list[dict] = field(default_factory=list)

    def text(self) -> str:
        messages = " ".join(str(m.get("content", "")) for m in self.recent_messages if isinstance(m, dict))
        return " ".join(p for p in (self.context, self.user_input, self.conversation_summary, messages) if p)

    def is_empty(self) -> bool:
        return not self.text().strip()


def tokenize(text: str) -> list[str]:
    return _WORD.findall(text.lower())


class TransitionStrategy(ABC):
    """Chooses which transition, if any, the caller's text points to."""

    @abstractmethod
    def choose(
        self,
        workflow: WorkflowDefinition,
        current_phase: str,
        candidates: list[Transition],
        signals: TransitionSignals,
    ) -> Optional[Transition]:
        """
        Pick a transition out of ``candidates``.

        Args:
            workflow: Active workflow
            current_phase: Phase the conversation is in
            candidates: Transitions visible to the caller, self transitions excluded
            signals: Caller-reported text

        Returns:
            The chosen transition, or None to stay in the current phase
        """


class StayStrategy(TransitionStrategy):
    """Never infers a transition; only explicit requests move the phase."""

    def choose(self, workflow, current_phase, candidates, signals):
        return None


class KeywordTransitionStrategy(TransitionStrategy):
    """
    Scores each candidate by keyword overlap with the caller's text.

    - The trigger written as a phrase (``requirements complete``) scores 3
    - Each trigger word found scores 1, a completion word with it adds 1
    - Each distinctive word of the target phase description scores 1

    A candidate fires only if its score reaches ``min_score`` and is
    strictly higher than every other candidate's.
    """

    def __init__(self, min_score: int = 3):
        self.min_score = min_score

    def score(self, workflow: WorkflowDefinition, transition: Transition, text: str, words: set[str]) -> int:
        trigger_words = [w for w in tokenize(transition.trigger) if w not in STOP_WORDS]
        score = 0

        if " ".join(tokenize(transition.trigger)) in " ".join(tokenize(text)):
            score += 3

        matched = [w for w in trigger_words if w in words]
        score += len(matched)
        if matched and words & COMPLETION_WORDS and set(trigger_words) & COMPLETION_WORDS:
            score += 1

        target = workflow.states.get(transition.to)
        if target is not None:
            description_words = {w for w in tokenize(target.description) if w not in STOP_WORDS and len(w) > 3}
            score += len(description_words & words)

        return score

    def choose(self, workflow, current_phase, candidates, signals):
        if not candidates or signals.is_empty():
            return None

        text = signals.text()
        words = set(tokenize(text))
        scored = sorted(
            ((self.score(workflow, t, text, words), index, t) for index, t in enumerate(candidates)),
            key=lambda entry: (-entry[0], entry[1]),
        )

        best_score, _, best = scored[0]
        runner_up = scored[1][0] if len(scored) > 1 else -1
        logger.debug(
            f"Transition scores from '{current_phase}': "
            + ", ".join(f"{t.trigger}={s}" for s, _, t in scored)
        )

        if best_score >= self.min_score and best_score > runner_up:
            return best
        return None


STRATEGIES = {
    "keyword": KeywordTransitionStrategy,
    "stay": StayStrategy,
}


def create_strategy(config: Optional[dict] = None) -> TransitionStrategy:
    """Build the strategy named in config (``strategy``, ``min_score``)."""
    config = config or {}
    name = config.get("strategy", "keyword")
    if name not in STRATEGIES:
        raise ValueError(f"Unknown transition strategy '{name}'. Available: {', '.join(STRATEGIES)}")
    if name == "keyword":
        return KeywordTransitionStrategy(min_score=int(config.get("min_score", 3)))
    return STRATEGIES[name]()
