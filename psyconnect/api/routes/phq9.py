from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...core.db import get_db
from ...core.errors import IllegalTransition, IncompleteAssessment
from ..deps import get_session_state, locked_state
from ..schemas import PHQ9QuestionsOut, PHQ9Question, PHQ9FormIn, ReplyOut
from ...conversation.phq9 import PHQ9_ITEMS, CONVERSATIONAL_QUESTIONS, ANSWER_OPTIONS
from ...conversation.orchestrator import submit_phq9
from ...conversation.state import ConversationState
from .sessions import reply_out, commit

router = APIRouter(tags=["phq9"])

@router.get("/phq9/questions", response_model=PHQ9QuestionsOut)
def questions():
    return PHQ9QuestionsOut(
        questions=[
            PHQ9Question(index=i, item=item, prompt=CONVERSATIONAL_QUESTIONS[i])
            for i, item in enumerate(PHQ9_ITEMS)
        ],
        options=[{"label": label, "value": value} for label, value in ANSWER_OPTIONS],
    )

@router.post("/sessions/{session_id}/phq9", response_model=ReplyOut)
def submit_form(payload: PHQ9FormIn, state: ConversationState = Depends(get_session_state), db: Session = Depends(get_db)):
    with locked_state(state.session_id) as current:
        try:
            new_state, reply, meta = submit_phq9(current, payload.responses)
        except IllegalTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        except IncompleteAssessment as e:
            raise HTTPException(status_code=422, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        commit(db, new_state, meta)
    return reply_out(new_state, reply, meta)
