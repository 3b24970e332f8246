# errors.py - Error taxonomy shared by every router
# Subclasses of HTTPException so handlers raise them like the framework's own.

from typing import Optional

from fastapi import HTTPException, status


class ValidationFailed(HTTPException):
    """Missing or malformed input"""

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class Unauthenticated(HTTPException):
    """Missing, invalid or expired credential"""

    def __init__(self, detail: str = "Not authorized, token failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class Conflict(HTTPException):
    """Duplicate unique field. Reported as 400, clients rely on it."""

    def __init__(self, detail: str = "Already exists"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InternalFault(HTTPException):
    """Store or infrastructure failure"""

    def __init__(self, detail: str = "Server error", error: Optional[str] = None):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
        self.error = error
