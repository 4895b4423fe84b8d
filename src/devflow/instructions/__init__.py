"""Instruction text generation."""

from devflow.instructions.generator import (
    GeneratedInstructions,
    InstructionContext,
    InstructionGenerator,
)
from devflow.instructions.review import review_instructions
from devflow.instructions.system_prompt import generate_system_prompt
from devflow.instructions.variables import VariableResolver

__all__ = [
    "GeneratedInstructions",
    "InstructionContext",
    "InstructionGenerator",
    "VariableResolver",
    "generate_system_prompt",
    "review_instructions",
]
