"""
execution_token.py
------------------
Purpose:
    Shared-secret bearer check for the remote execute endpoints (cron
    services calling POST/PUT /reminders/execute).

Notes:
    - Open when REMINDER_EXECUTION_TOKEN is not configured.
    - Constant-time comparison.
"""

import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from remindhook.config import settings

_security = HTTPBearer(auto_error=False)


def verify_execution_token(token: str | None) -> None:
    expected = settings.REMINDER_EXECUTION_TOKEN
    if not expected:
        return
    if not token or not hmac.compare_digest(token.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def execution_token_dependency(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> None:
    verify_execution_token(credentials.credentials if credentials else None)
