from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session
import copy

from ...core.db import get_db
from ...core.config import settings
from ...core.errors import IllegalTransition
from ..deps import get_session_state, locked_state
from ..schemas import SummaryOut, SummaryPatch
from ...conversation.orchestrator import edit_summary
from ...conversation.state import ConversationState
from ...services.artifacts import save_summary
from ...services.session_store import store

router = APIRouter(prefix="/sessions", tags=["summary"])

@router.get("/{session_id}/summary", response_model=SummaryOut)
def get_summary(state: ConversationState = Depends(get_session_state)):
    # read-only review; the stage does not move
    if state.summary is None:
        raise HTTPException(status_code=404, detail="Summary not generated yet")
    return SummaryOut(stage=state.stage.value, summary=state.summary.model_dump())

@router.patch("/{session_id}/summary", response_model=SummaryOut)
def patch_summary(payload: SummaryPatch, state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True)
    with locked_state(state.session_id) as current:
        working = copy.deepcopy(current)
        try:
            summary = edit_summary(working, changes)
        except IllegalTransition:
            raise HTTPException(status_code=404, detail="Summary not generated yet")
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=e.errors(include_url=False))
        if settings.PERSIST_ARTIFACTS:
            save_summary(db, working)
        store.save(working)
    return SummaryOut(stage=working.stage.value, summary=summary.model_dump())
