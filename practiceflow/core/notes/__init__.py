"""AI-assisted clinical note generation."""

from .generator import (
    NoteGenerationError,
    NoteGenerator,
    NoteRequest,
    build_prompt,
    get_note_generator,
)

__all__ = [
    "NoteGenerationError",
    "NoteGenerator",
    "NoteRequest",
    "build_prompt",
    "get_note_generator",
]
