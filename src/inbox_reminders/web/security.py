"""Shared-secret protection for the control API."""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

API_TOKEN_HEADER = "X-API-Token"


@dataclass(slots=True)
class ApiTokenGuard:
    """Require a static token header when one is configured."""

    token: str | None = None
    header_name: str = API_TOKEN_HEADER

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def validate(self, request: Request) -> None:
        """Raise 401 unless the request carries the configured token."""
        if not self.token:
            return
        submitted = request.headers.get(self.header_name)
        if not submitted:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing API token.",
            )
        if not secrets.compare_digest(submitted, self.token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API token.",
            )


__all__ = ["API_TOKEN_HEADER", "ApiTokenGuard"]
