"""FastAPI 의존성 주입 모듈 — 호출자 식별 및 권한 검사.

FastAPI dependency injection module — Caller identification and authorization.
The identity provider issues bearer JWTs; this service verifies the
signature and trusts the ``sub``/``role`` claims as given.

Authentication Flow:
    1. 클라이언트가 Authorization: Bearer <token> 헤더를 전송 (선택)
       (Client optionally sends Authorization: Bearer <token>)
    2. 헤더가 없으면 익명 호출자 (No header → anonymous caller)
    3. decode_token()이 JWT를 검증하고 페이로드를 반환
       (decode_token verifies JWT and returns payload)
    4. 페이로드의 "sub"/"role"로 Caller를 구성 (Caller built from claims)
"""

from typing import Annotated

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from issuedesk.schemas.auth import ANONYMOUS, Caller, CallerRole
from issuedesk.utils.exceptions import ForbiddenError, UnauthorizedError
from issuedesk.utils.jwt import decode_token

# HTTP Bearer 토큰 추출기 — 토큰 없이도 통과 (Anonymous requests allowed)
security: HTTPBearer = HTTPBearer(auto_error=False)


async def get_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Caller:
    """JWT 토큰에서 호출자를 추출합니다. 토큰이 없으면 익명.

    Raises:
        UnauthorizedError: 토큰이 유효하지 않거나 만료됨 (Invalid or expired token)
    """
    if credentials is None:
        return ANONYMOUS
    try:
        payload: dict = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    try:
        role = CallerRole(payload.get("role", CallerRole.GENERAL.value))
    except ValueError:
        raise UnauthorizedError("Unknown role in token")
    return Caller(user_id=str(user_id), role=role)


async def require_user(
    caller: Annotated[Caller, Depends(get_caller)],
) -> Caller:
    """로그인한 호출자만 허용 (Identified callers only)."""
    if caller.is_anonymous:
        raise UnauthorizedError()
    return caller


async def require_staff(
    caller: Annotated[Caller, Depends(require_user)],
) -> Caller:
    """스태프(ADMIN)만 허용 (Staff only)."""
    if not caller.is_staff:
        raise ForbiddenError("Staff access required")
    return caller
