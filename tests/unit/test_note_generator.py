"""Tests for Note Generator."""

from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest

from practiceflow.config import settings
from practiceflow.core.errors import ValidationError
from practiceflow.core.notes.generator import (
    NoteGenerationError,
    NoteGenerator,
    NoteRequest,
    build_prompt,
)
from practiceflow.infra.claude import ClaudeClientError


@dataclass
class MockClaudeResponse:
    """Mock Claude response."""
    content: str
    model: str = "claude-sonnet-4-20250514"
    input_tokens: int = 900
    output_tokens: int = 400
    stop_reason: str = "end_turn"
    latency_ms: float = 1200.0


class TestBuildPrompt:
    """Test prompt rendering."""

    def test_includes_session_details(self):
        prompt = build_prompt(NoteRequest(
            transcript="  Client reported better sleep.  ",
            client_name="J.D.",
            session_date="2025-03-14",
            session_type="Couples Therapy",
            diagnosis="F41.1",
        ))
        assert "- Client: J.D." in prompt
        assert "- Date: 2025-03-14" in prompt
        assert "- Session Type: Couples Therapy" in prompt
        assert "- Diagnosis: F41.1" in prompt
        assert "Session Transcript:\nClient reported better sleep.\n" in prompt
        assert "DAP" in prompt

    def test_defaults(self):
        prompt = build_prompt(NoteRequest(transcript="Hello"))
        assert "- Client: Client" in prompt
        assert "- Session Type: Individual Therapy" in prompt
        assert "Diagnosis" not in prompt


class TestNoteGenerator:
    """Test NoteGenerator."""

    @pytest.fixture
    def mock_claude_client(self):
        """Create mock Claude client."""
        client = AsyncMock()
        client.generate = AsyncMock(return_value=MockClaudeResponse(content="**DATA:** ..."))
        return client

    @pytest.fixture
    def generator(self, mock_claude_client):
        """Create generator with mock client."""
        return NoteGenerator(claude_client=mock_claude_client)

    @pytest.mark.asyncio
    async def test_generate(self, generator, mock_claude_client):
        """Test successful generation."""
        result = await generator.generate(NoteRequest(
            transcript="Client discussed work stress.",
            client_name="J.D.",
            session_date="2025-03-14",
        ))

        assert result["success"] is True
        assert result["note"] == "**DATA:** ..."
        assert result["metadata"]["client_name"] == "J.D."
        assert result["metadata"]["model"] == "claude-sonnet-4-20250514"

        kwargs = mock_claude_client.generate.await_args.kwargs
        assert kwargs["max_tokens"] == settings.note_max_tokens
        assert kwargs["temperature"] == settings.note_temperature
        assert "Client discussed work stress." in kwargs["prompt"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("transcript", ["", "   \n"])
    async def test_blank_transcript(self, generator, mock_claude_client, transcript):
        """Blank transcripts never reach the model."""
        with pytest.raises(ValidationError):
            await generator.generate(NoteRequest(transcript=transcript))
        mock_claude_client.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_status_error(self, generator, mock_claude_client):
        mock_claude_client.generate.side_effect = ClaudeClientError(
            "API returned status 529: Overloaded", status_code=529
        )

        with pytest.raises(NoteGenerationError) as exc:
            await generator.generate(NoteRequest(transcript="Hello"))

        assert exc.value.status_code == 502
        assert exc.value.details == {"status_code": 529}
        assert exc.value.message.startswith("Failed to generate note:")

    @pytest.mark.asyncio
    async def test_timeout(self, generator, mock_claude_client):
        mock_claude_client.generate.side_effect = ClaudeClientError("Request timed out after 30 seconds")

        with pytest.raises(NoteGenerationError) as exc:
            await generator.generate(NoteRequest(transcript="Hello"))

        assert "timed out" in exc.value.message
        assert exc.value.details == {}
