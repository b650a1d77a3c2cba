"""Job submission and query schemas."""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class JobSubmitRequest(BaseModel):
    """Body of POST /jobs.

    Only ``type`` is interpreted here; every other field is kept verbatim
    as the job payload.
    """
    type: Any = None

    class Config:
        extra = "allow"

    def payload(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class JobCreatedResponse(BaseModel):
    id: str


class JobView(BaseModel):
    """Projection of a job returned to its owner.

    Optional fields are omitted from the response when unset.
    """
    id: str
    user_id: str
    type: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    tokens_used: Optional[int] = None
    model: Optional[str] = None

    class Config:
        from_attributes = True
