from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional

MAX_FILE_MB = 10
MAX_FILE_BYTES = MAX_FILE_MB * 1024 * 1024

ALLOWED_MIME = {"application/pdf"}


class SessionResponse(BaseModel):
    status: bool = True
    session_id: str
    form: str
    view: str
    state: str
    busy: bool = False
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    field_errors: Dict[str, str] = Field(default_factory=dict)

    # second stage, resume analyzer only
    advance_state: Optional[str] = None
    revision: Optional[Dict[str, Any]] = None
    revision_error: Optional[str] = None

    notices: List[Dict[str, Any]] = Field(default_factory=list)
