"""Authentication helpers for the webhook endpoint."""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

basic = HTTPBasic(auto_error=False)


def _matches(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def require_webhook_auth(
    request: Request,
    credentials: Annotated[HTTPBasicCredentials | None, Depends(basic)],
) -> None:
    auth = request.app.state.config.http.auth
    if auth is None or not auth.valid:
        return

    # Both comparisons always run.
    user_ok = credentials is not None and _matches(credentials.username, auth.username)
    password_ok = credentials is not None and _matches(credentials.password, auth.password)
    if not (user_ok and password_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
