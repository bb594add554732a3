"""
Response envelope helpers for the panel's JSON API

Successful calls answer {success, message, data}; failures the grids can
recover from answer {success: false, message, error_code, details}.
Client mistakes are raised as HTTPException instead.
"""

from typing import Any, Optional
from fastapi import HTTPException, status
from fastapi.responses import JSONResponse

from barpanel.schemas.common import StandardResponse, ErrorResponse

STORE_UNAVAILABLE = "store_unavailable"

def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    """Wrap grid data (rows, counts, rendered rows) in the success envelope"""
    body = StandardResponse(success=True, message=message, data=data)
    return JSONResponse(content=body.model_dump(mode="json"), status_code=status_code)

def error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Any = None,
    status_code: int = 400
) -> JSONResponse:
    body = ErrorResponse(message=message, error_code=error_code, details=details)
    return JSONResponse(content=body.model_dump(mode="json"), status_code=status_code)

def store_unavailable(message: str) -> JSONResponse:
    """502 for a read or write the backing store failed; the operator may retry"""
    return error_response(message=message, error_code=STORE_UNAVAILABLE, status_code=status.HTTP_502_BAD_GATEWAY)

def validation_error(message: str, errors: list, status_code: int = 422):
    """Raise for a grid query the client got wrong (bad sort, filter or page)"""
    raise HTTPException(status_code=status_code, detail={"message": message, "errors": errors})

def not_found_error(resource: str = "Row"):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")

def unauthorized_error(message: str = "Unauthorized"):
    """Raise for a change hook call without the shared secret"""
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=message)
