from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, Optional


class SwipeRequest(BaseModel):
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BlockRequest(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def trim_reason(cls, v):
        return v[:500] if v else v
