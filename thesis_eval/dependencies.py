"""FastAPI 依赖注入工具：数据库会话与调用者身份。

Token 由外部平台签发，格式为 ``base64(payload).hmac_sha256``，
payload 包含 ``sub``（用户 UUID）、``role`` 与 ``exp``。
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from thesis_eval.config import get_settings
from thesis_eval.db import get_db
from thesis_eval.models import User, UserRole
from thesis_eval.services.policy import Actor

logger = logging.getLogger(__name__)

__all__ = [
    "create_token",
    "decode_token",
    "get_current_actor",
    "get_db",
    "require_admin",
    "require_staff",
    "require_student",
]


def _sign(payload_b64: str) -> str:
    secret = get_settings().secret_key
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).hexdigest()


def create_token(user_id: uuid.UUID, role: str, expires_in_hours: Optional[int] = None) -> str:
    """创建签名 Token，测试与外部平台对接时使用。"""

    hours = expires_in_hours if expires_in_hours is not None else get_settings().token_expire_hours
    expire = datetime.now(timezone.utc) + timedelta(hours=hours)
    payload = {"sub": str(user_id), "role": role, "exp": expire.isoformat()}
    payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    return f"{payload_b64}.{_sign(payload_b64)}"


def decode_token(token: str) -> Optional[dict]:
    """校验签名与有效期，失败返回 ``None``。"""

    parts = token.split(".")
    if len(parts) != 2:
        return None
    payload_b64, signature = parts
    if not hmac.compare_digest(signature, _sign(payload_b64)):
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64).decode())
        exp = datetime.fromisoformat(payload["exp"])
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
        return None
    if datetime.now(timezone.utc) > exp:
        return None
    return payload


def get_current_actor(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Actor:
    """从 Bearer Token 解析当前调用者。角色以用户表为准。"""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not authorization or not authorization.startswith("Bearer "):
        raise credentials_exception

    payload = decode_token(authorization[7:])
    if not payload:
        raise credentials_exception
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise credentials_exception

    user = db.get(User, user_id)
    if user is None:
        logger.warning("Token subject %s has no matching user", user_id)
        raise credentials_exception
    return Actor(id=user.id, role=user.role)


def _require(actor: Actor, *roles: UserRole) -> Actor:
    if actor.role not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires role: {'/'.join(role.value for role in roles)}",
        )
    return actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    return _require(actor, UserRole.ADMIN)


def require_staff(actor: Actor = Depends(get_current_actor)) -> Actor:
    """要求评委（staff）或管理员权限。"""

    return _require(actor, UserRole.STAFF, UserRole.ADMIN)


def require_student(actor: Actor = Depends(get_current_actor)) -> Actor:
    return _require(actor, UserRole.STUDENT)
