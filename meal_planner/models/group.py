"""
Household group model: who is eating and what they can't eat.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

DEMOGRAPHIC_FIELDS = ("adults", "teens", "kids", "toddlers")


class Demographics(BaseModel):
    adults: int = Field(default=0, ge=0)
    teens: int = Field(default=0, ge=0)
    kids: int = Field(default=0, ge=0)
    toddlers: int = Field(default=0, ge=0)


class Group(BaseModel):
    id: str
    name: str
    demographics: Demographics = Field(default_factory=Demographics)
    dietary_restrictions: List[str] = Field(default_factory=list)
    owner: Optional[str] = None
    status: str = "active"

    def __repr__(self):
        return f"<Group(id={self.id!r}, name={self.name!r})>"
