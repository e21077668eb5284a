from __future__ import annotations

from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str
    success: bool = True
    status_code: int = 200


class ErrorResponse(BaseModel):
    message: str
    success: bool = False
    status_code: int
