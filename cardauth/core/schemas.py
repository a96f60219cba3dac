from typing import Any, Dict, Optional

from pydantic import BaseModel


class BaseResponse(BaseModel):
    """Envelope for every non-decision response: errors, health, root."""

    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    status_code: Optional[int] = None
