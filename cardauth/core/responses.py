from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse

from .schemas import BaseResponse


def error_response(
    message: str,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return BaseResponse(
        success=False,
        message=message,
        data=details or {},
    ).model_dump(exclude_none=True)


def decision_response(body: Dict[str, Any]) -> JSONResponse:
    # Approvals and declines alike are HTTP 200; the processor reads ``approved``
    return JSONResponse(status_code=status.HTTP_200_OK, content=body)
