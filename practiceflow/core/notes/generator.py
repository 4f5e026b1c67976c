"""
Clinical note generation using Claude.

Turns a session transcript into a DAP (Data, Assessment, Plan) note.
The request is bounded by the client's hard timeout and never retried.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from practiceflow.config import settings
from practiceflow.core.errors import UpstreamServiceError, ValidationError
from practiceflow.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client

logger = logging.getLogger(__name__)


NOTE_PROMPT = """You are an experienced clinical psychologist creating a professional clinical note in DAP (Data, Assessment, Plan) format.

Session Details:
- Client: {client_name}
- Date: {session_date}
- Session Type: {session_type}
{diagnosis_line}
Session Transcript:
{transcript}

Please create a comprehensive DAP note with the following sections:

**DATA (Subjective & Objective Information):**
- Client's reported symptoms, concerns, and experiences
- Observable behaviors, affect, and presentation
- Relevant quotes or statements from the client

**ASSESSMENT (Clinical Analysis):**
- Clinical interpretation of the data
- Progress toward treatment goals
- Risk assessment if applicable
- Clinical impressions and patterns observed

**PLAN (Treatment Plan & Next Steps):**
- Interventions used in this session
- Homework or between-session tasks
- Plan for next session
- Any referrals or coordination of care

Guidelines:
1. Use professional, clinical language
2. Be objective and factual
3. Avoid diagnostic conclusions unless clearly supported
4. Include specific examples from the session
5. Be concise but comprehensive
6. Maintain client confidentiality (use "client" rather than names in the note)
7. Focus on clinically relevant information

Generate the note now:"""


class NoteGenerationError(UpstreamServiceError):
    """Raised when the language model could not produce a note."""


@dataclass
class NoteRequest:
    """Input for one note."""
    transcript: str
    client_name: Optional[str] = None
    session_date: Optional[str] = None
    session_type: Optional[str] = None
    diagnosis: Optional[str] = None

    def validate(self) -> None:
        if not self.transcript or not self.transcript.strip():
            raise ValidationError(
                "Transcript is required and cannot be empty",
                details={"field": "transcript"},
            )


def build_prompt(request: NoteRequest) -> str:
    """Render the DAP prompt for a request."""
    diagnosis_line = f"- Diagnosis: {request.diagnosis}\n" if request.diagnosis else ""
    return NOTE_PROMPT.format(
        client_name=request.client_name or "Client",
        session_date=request.session_date or date.today().isoformat(),
        session_type=request.session_type or "Individual Therapy",
        diagnosis_line=diagnosis_line,
        transcript=request.transcript.strip(),
    )


class NoteGenerator:
    """Generates DAP notes from session transcripts."""

    def __init__(self, claude_client: Optional[ClaudeClient] = None):
        """Initialize generator.

        Args:
            claude_client: Claude client (uses the singleton if not provided)
        """
        self._client = claude_client

    def _get_client(self) -> ClaudeClient:
        if self._client is None:
            self._client = get_claude_client()
        return self._client

    async def generate(self, request: NoteRequest) -> dict[str, Any]:
        """
        Generate a clinical note.

        Args:
            request: Transcript and session details

        Returns:
            Dict with success, note and metadata

        Raises:
            ValidationError: If the transcript is blank
            NoteGenerationError: If the model call fails for any reason
        """
        request.validate()
        prompt = build_prompt(request)

        try:
            response = await self._get_client().generate(
                prompt=prompt,
                model=settings.claude_note_model,
                max_tokens=settings.note_max_tokens,
                temperature=settings.note_temperature,
            )
        except ClaudeClientError as e:
            logger.error(f"Note generation failed: {e}")
            details = {"status_code": e.status_code} if e.status_code else None
            raise NoteGenerationError(f"Failed to generate note: {e}", details=details) from e

        logger.info(
            f"Note generated: {response.output_tokens} tokens in {response.latency_ms:.0f}ms"
        )

        return {
            "success": True,
            "note": response.content,
            "metadata": {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "client_name": request.client_name,
                "session_date": request.session_date,
                "model": response.model,
            },
        }


_generator: Optional[NoteGenerator] = None


def get_note_generator() -> NoteGenerator:
    """Get note generator singleton."""
    global _generator
    if _generator is None:
        _generator = NoteGenerator()
    return _generator
