from app.templates.compiler import REFERENCE_LOCK_INSTRUCTION, append_reference_lock, compile_prompt
from app.templates.models import (
    CinematicTemplate,
    PromptTemplate,
    SimpleTemplate,
    StructuredTemplate,
    StyleDescriptor,
    UniversalTemplate,
)
from app.templates.parsing import parse_template

__all__ = [
    "REFERENCE_LOCK_INSTRUCTION",
    "CinematicTemplate",
    "PromptTemplate",
    "SimpleTemplate",
    "StructuredTemplate",
    "StyleDescriptor",
    "UniversalTemplate",
    "append_reference_lock",
    "compile_prompt",
    "parse_template",
]
