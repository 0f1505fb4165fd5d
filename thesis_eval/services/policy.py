"""调用者身份与角色校验。

身份认证由外部平台完成，这里只接收已解析的 ``Actor`` 并在写操作之前
做角色/归属检查。
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from thesis_eval.errors import ForbiddenError
from thesis_eval.models import UserRole


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def require_role(actor: Actor, *roles: UserRole, action: str = "perform this action") -> None:
    if actor.role not in roles:
        allowed = "/".join(role.value for role in roles)
        raise ForbiddenError(f"Only {allowed} may {action}")


def require_owner_or_admin(actor: Actor, owner_id: uuid.UUID, action: str) -> None:
    """本人或管理员才能操作。"""

    if actor.is_admin:
        return
    if actor.id != owner_id:
        raise ForbiddenError(f"You may only {action} your own record")
