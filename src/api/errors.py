from fastapi import HTTPException
from src.core.exceptions import (
    ConflictError, NotFoundError, StorageError, StorefrontError, ValidationError,
)

def to_http_exception(error: StorefrontError) -> HTTPException:
    """Map a service error onto the HTTP status the admin UI expects"""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, StorageError):
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=500, detail=f"Internal server error: {str(error)}")
