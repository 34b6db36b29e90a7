from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import copy

from ...core.db import get_db
from ...core.errors import IllegalTransition
from ..deps import get_session_state, locked_state
from ..schemas import RecommendationsOut, PsychiatristOut, SelectIn, ReplyOut
from ...conversation.orchestrator import current_matches, select_psychiatrist
from ...conversation.state import ConversationState
from ...matching.loader import Psychiatrist, get_psychiatrist
from ...services.session_store import store
from .sessions import reply_out, commit

router = APIRouter(tags=["recommendations"])

def psychiatrist_out(p: Psychiatrist, score: float | None = None) -> PsychiatristOut:
    return PsychiatristOut(
        id=p.id,
        name=p.name,
        credential=p.credential,
        gender=p.gender,
        specialties=p.specialties,
        location=p.location,
        availability=p.availability,
        languages=p.languages,
        acceptsNewPatients=p.accepts_new_patients,
        rating=p.rating,
        yearsExperience=p.years_experience,
        bio=p.bio,
        score=score,
    )

@router.get("/sessions/{session_id}/recommendations", response_model=RecommendationsOut)
def recommendations(state: ConversationState = Depends(get_session_state)):
    with locked_state(state.session_id) as current:
        working = copy.deepcopy(current)
        try:
            matches = current_matches(working)
        except IllegalTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        store.save(working)
    return RecommendationsOut(
        stage=working.stage.value,
        preferences=working.preferences.model_dump(exclude_none=True),
        items=[psychiatrist_out(m.psychiatrist, m.score) for m in matches],
    )

@router.post("/sessions/{session_id}/recommendations/select", response_model=ReplyOut)
def select(payload: SelectIn, state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    with locked_state(state.session_id) as current:
        try:
            new_state, reply, meta = select_psychiatrist(current, payload.psychiatristId)
        except IllegalTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        commit(db, new_state, meta)
    return reply_out(new_state, reply, meta)

@router.get("/psychiatrists/{psychiatrist_id}", response_model=PsychiatristOut)
def psychiatrist_detail(psychiatrist_id: str):
    p = get_psychiatrist(psychiatrist_id)
    if not p:
        raise HTTPException(status_code=404, detail="Psychiatrist not found")
    return psychiatrist_out(p)
