from functools import lru_cache
from typing import Dict, List, Optional
import os

import yaml
from pydantic import BaseModel, Field

from ..core.config import settings


class Psychiatrist(BaseModel):
    id: str
    name: str
    credential: str = "MD"
    gender: Optional[str] = None
    specialties: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    location: str = ""
    insurance_carriers: List[str] = Field(default_factory=list)
    in_network_carriers: List[str] = Field(default_factory=list)
    accepts_new_patients: bool = True
    accepts_cash_pay: bool = False
    rating: float = 0.0
    years_experience: int = 0
    availability: str = ""
    languages: List[str] = Field(default_factory=list)
    bio: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None


@lru_cache(maxsize=4)
def _load(path: str) -> tuple:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return tuple(Psychiatrist.model_validate(p) for p in data.get("psychiatrists", []))


def load_psychiatrists(path: str | None = None) -> List[Psychiatrist]:
    """Directory records in file order."""
    return list(_load(os.path.abspath(path or settings.PSYCHIATRISTS_FILE)))


def psychiatrists_by_id(path: str | None = None) -> Dict[str, Psychiatrist]:
    return {p.id: p for p in load_psychiatrists(path)}


def get_psychiatrist(psychiatrist_id: str) -> Optional[Psychiatrist]:
    return psychiatrists_by_id().get(psychiatrist_id)
