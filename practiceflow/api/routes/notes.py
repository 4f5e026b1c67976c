"""
Clinical Note Endpoints

AI-assisted DAP note generation, gated on the AI clinical notes feature.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from practiceflow.api.dependencies import get_notes
from practiceflow.api.middleware.auth import PracticeContext, require_practice
from practiceflow.core.billing import Feature, check_feature_access, parse_addon, parse_plan
from practiceflow.core.errors import FeatureAccessDenied
from practiceflow.core.notes import NoteGenerator, NoteRequest
from practiceflow.infra.database import get_db
from practiceflow.models.database import AuditAction, AuditLog, SubscriptionStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notes", tags=["Notes"])


class GenerateNoteRequest(BaseModel):
    """Session transcript and optional session details."""

    transcript: str = Field(default="", max_length=200_000)
    client_name: Optional[str] = None
    session_date: Optional[str] = Field(default=None, examples=["2025-03-14"])
    session_type: Optional[str] = Field(default=None, examples=["Individual Therapy"])
    diagnosis: Optional[str] = None


def require_feature(practice: PracticeContext, feature: Feature) -> None:
    """Raise FeatureAccessDenied unless the practice's subscription grants ``feature``."""
    decision = check_feature_access(
        parse_plan(practice.plan),
        parse_addon(practice.addon),
        feature,
        SubscriptionStatus(practice.status),
    )
    if not decision.allowed:
        details = decision.to_dict()
        raise FeatureAccessDenied(details.pop("message"), details=details)


@router.post("/generate", summary="Generate a DAP clinical note")
async def generate_note(
    body: GenerateNoteRequest,
    practice: PracticeContext = Depends(require_practice),
    generator: NoteGenerator = Depends(get_notes),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Generate a note from a session transcript.

    403 when the plan lacks AI notes, 400 for a blank transcript, 502 when
    the language model fails or times out.
    """
    require_feature(practice, Feature.AI_CLINICAL_NOTES)

    result = await generator.generate(NoteRequest(**body.model_dump()))

    # Transcript and note text stay out of the audit trail
    db.add(AuditLog(
        actor_id=str(practice.id),
        actor_type="user",
        action=AuditAction.GENERATE_NOTE,
        resource_type="clinical_note",
        details={"model": result["metadata"]["model"], "transcript_chars": len(body.transcript)},
    ))

    return result
