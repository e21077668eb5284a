from __future__ import annotations

from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dams.core.config import settings
from dams.models.user import Role
from dams.services.access import Actor


bearer = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "algorithms": [settings.jwt_algorithm],
        "leeway": settings.jwt_exp_leeway_seconds,
    }

    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        kwargs["options"] = {"verify_aud": False}

    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer

    try:
        payload = jwt.decode(token, settings.jwt_secret, **kwargs)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    return payload


def _parse_payload(payload: dict[str, Any]) -> Actor:
    raw_id = payload.get("user_id") or payload.get("sub")
    try:
        user_id = int(raw_id)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid user id claim") from exc

    raw_role = str(payload.get("role") or Role.user.value).strip().lower()
    try:
        role = Role(raw_role)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid role claim") from exc

    return Actor(id=user_id, role=role)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> Actor:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return _parse_payload(_decode_token(credentials.credentials))
