from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from app.api.models import TokenPayload
from app.core.context import GameContext


def get_context(request: Request) -> GameContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise RuntimeError("Game context not initialized. It is built at startup.")
    return ctx


def extract_token(request: Request) -> str | None:
    """Bearer token from the Authorization header, falling back to the `token` cookie."""

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get("token")


def get_current_user(request: Request, ctx: GameContext = Depends(get_context)) -> TokenPayload:
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    payload = ctx.auth.verify_token(token)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return payload
