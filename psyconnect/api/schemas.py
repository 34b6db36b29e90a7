from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List

class SessionCreated(BaseModel):
    sessionId: str
    token: str
    expiresIn: int
    stage: str
    greeting: str

class TurnOut(BaseModel):
    role: str
    content: str

class SessionView(BaseModel):
    sessionId: str
    stage: str
    completion: int
    coveredTopics: List[str]
    phq9Answered: int
    phq9Score: Optional[int] = None
    phq9Severity: Optional[str] = None
    selectedPsychiatristId: Optional[str] = None
    turns: List[TurnOut]

class MessageIn(BaseModel):
    message: str = Field(min_length=1, max_length=4000)

class ReplyOut(BaseModel):
    reply: str
    stage: str
    completion: int
    error: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

class PHQ9Question(BaseModel):
    index: int
    item: str
    prompt: str

class PHQ9QuestionsOut(BaseModel):
    questions: List[PHQ9Question]
    options: List[Dict[str, Any]]

class PHQ9FormIn(BaseModel):
    responses: List[int]

class SummaryOut(BaseModel):
    stage: str
    summary: Dict[str, Any]

class SummaryPatch(BaseModel):
    narrative: Optional[str] = None
    chief_complaint: Optional[str] = None
    symptoms: Optional[List[str]] = None
    diagnoses: Optional[List[str]] = None
    medications: Optional[List[str]] = None
    safety_concerns: Optional[Dict[str, Any]] = None
    functional_impact: Optional[str] = None
    patient_age: Optional[str] = None
    gender: Optional[str] = None
    confirmed: Optional[bool] = None

class PsychiatristOut(BaseModel):
    id: str
    name: str
    credential: str
    gender: Optional[str] = None
    specialties: List[str]
    location: str
    availability: str
    languages: List[str]
    acceptsNewPatients: bool
    rating: float
    yearsExperience: int
    bio: str
    score: Optional[float] = None

class RecommendationsOut(BaseModel):
    stage: str
    preferences: Dict[str, Any]
    items: List[PsychiatristOut]

class SelectIn(BaseModel):
    psychiatristId: str

class BookingOut(BaseModel):
    stage: str
    psychiatristId: str
    recipient: Optional[str] = None
    availability: Optional[str] = None
    subject: str
    body: str
    approved: bool
    sent: bool
    bookingId: Optional[str] = None

class DraftPatch(BaseModel):
    subject: Optional[str] = None
    body: Optional[str] = None
    recipient: Optional[str] = None
