"""
Response envelope shared by all routes: {"success", "data", "message"[, "pagination"]}
"""
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class Response(JSONResponse):
    """JSONResponse wrapping ``data`` in the standard envelope"""

    def __init__(
        self,
        success: bool = True,
        data: Any = None,
        message: str = "Success",
        status_code: int = status.HTTP_200_OK,
        pagination: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        content = {
            "success": success,
            "data": self._serialize_data(data),
            "message": message,
        }
        if pagination:
            content["pagination"] = pagination

        super().__init__(content=content, status_code=status_code, **kwargs)

    def _serialize_data(self, data: Any) -> Any:
        if data is None:
            return None
        if isinstance(data, BaseModel):
            return data.model_dump(mode="json")
        if isinstance(data, UUID):
            return str(data)
        if isinstance(data, Decimal):
            return float(data)
        if isinstance(data, (datetime, date)):
            return data.isoformat()
        if isinstance(data, (list, tuple)):
            return [self._serialize_data(item) for item in data]
        if isinstance(data, dict):
            return {key: self._serialize_data(value) for key, value in data.items()}
        return data


def paginate(total: int, page: int, limit: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
