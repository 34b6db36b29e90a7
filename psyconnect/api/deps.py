from contextlib import contextmanager
from fastapi import Depends, HTTPException, Path
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from ..core.security import decode_token
from ..conversation.state import ConversationState
from ..services.session_store import store
from ..core.errors import SessionBusy

bearer = HTTPBearer(auto_error=False)

def get_session_state(
    session_id: str = Path(...),
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> ConversationState:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=401, detail="Missing Authorization Bearer token")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("typ") != "session":
        raise HTTPException(status_code=401, detail="Invalid token type")
    if payload.get("sub") != session_id:
        raise HTTPException(status_code=403, detail="Token does not belong to this session")
    state = store.get(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return state

@contextmanager
def locked_state(session_id: str):
    """Hold the session for one request and yield its latest state."""
    try:
        with store.claim(session_id):
            state = store.get(session_id)
            if state is None:
                raise HTTPException(status_code=404, detail="Session not found")
            yield state
    except SessionBusy:
        raise HTTPException(status_code=409, detail="This session is still processing a previous message")
