from pydantic import BaseModel, field_validator
from typing import Optional, List


class ApartmentResponse(BaseModel):
    id: str
    owner_id: str
    partner_ids: List[str] = []
    roommate_capacity: Optional[int] = None
    title: Optional[str] = None
    city: Optional[str] = None

    @field_validator("partner_ids", mode="before")
    @classmethod
    def coerce_partner_ids(cls, value):
        if not value:
            return []
        return [pid for pid in value if pid]

    class Config:
        from_attributes = True
