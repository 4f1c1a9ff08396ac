import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    timestamp: datetime
    actor_type: str
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    team_id: Optional[int] = None
    action: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    changes: Optional[Dict[str, Dict[str, Any]]] = None
    location_verified: Optional[bool] = None
    distance_meters: Optional[float] = None
    actual_duration_minutes: Optional[int] = None

    @field_validator("changes", mode="before")
    @classmethod
    def _decode_changes(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value


class HistoryListResponse(BaseModel):
    appointment_id: int
    entries: List[HistoryEntryResponse]
    total: int
