"""
Response envelope shared by all endpoints.

Every response body has the shape
``{"status": bool, "data": ..., "message": str, "pagination": ... | null}``.
Envelopes are immutable and built fresh for each response.
"""

import math
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.datastructures import URL


class Pagination(BaseModel):
    """Page metadata attached to paginated list responses."""

    model_config = ConfigDict(frozen=True)

    current_page: int
    total_pages: int
    items_per_page: int
    total_items: int
    next_page_url: Optional[str] = None
    prev_page_url: Optional[str] = None

    @classmethod
    def build(cls, page: int, per_page: int, total: int, url: Optional[URL] = None) -> "Pagination":
        """Page metadata; links keep the query of ``url`` and only change ``page``."""
        total_pages = max(1, math.ceil(total / per_page))
        next_url = prev_url = None
        if url is not None:
            if page < total_pages:
                next_url = str(url.include_query_params(page=page + 1))
            if page > 1:
                prev_url = str(url.include_query_params(page=min(page - 1, total_pages)))
        return cls(
            current_page=page,
            total_pages=total_pages,
            items_per_page=per_page,
            total_items=total,
            next_page_url=next_url,
            prev_page_url=prev_url,
        )

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-Total-Count": str(self.total_items),
            "X-Total-Pages": str(self.total_pages),
            "X-Per-Page": str(self.items_per_page),
            "X-Current-Page": str(self.current_page),
        }
        if self.next_page_url:
            headers["X-Next-Page"] = self.next_page_url
        if self.prev_page_url:
            headers["X-Previous-Page"] = self.prev_page_url
        return headers


class ApiResponse(BaseModel):
    """Standard response envelope."""

    model_config = ConfigDict(frozen=True)

    status: bool
    data: Any = None
    message: str
    pagination: Optional[Pagination] = None


def success(
    data: Any = None,
    message: str = "Success",
    status_code: int = 200,
    pagination: Optional[Pagination] = None,
) -> JSONResponse:
    """Build a successful envelope response."""
    envelope = ApiResponse(status=True, data=data, message=message, pagination=pagination)
    headers = pagination.headers() if pagination else None
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope),
        headers=headers,
    )


def error(message: str = "Error", status_code: int = 500, data: Any = None) -> JSONResponse:
    """Build a failed envelope response."""
    envelope = ApiResponse(status=False, data=data, message=message)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(envelope))
