from pydantic import BaseModel
from typing import Optional, Generic, TypeVar

T = TypeVar('T')


class Envelope(BaseModel, Generic[T]):
    status: str
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


def ok(data=None) -> dict:
    return {"status": "ok", "data": data, "error": None}
