"""UUID 标识符的解析与宽松归一化。"""

from __future__ import annotations

import re
import uuid
from typing import Any, Optional

from thesis_eval.errors import InvalidArgumentError

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# 前端偶尔会把对象或空值序列化成这些字符串
_PLACEHOLDER_IDS = {"{}", "[object Object]", "undefined", "null", "None"}


def normalize_id(raw: Any) -> Optional[str]:
    """把原始输入转换为去空白的字符串；空值与占位符返回 ``None``。"""

    if raw is None:
        return None
    if isinstance(raw, uuid.UUID):
        return str(raw)
    text = str(raw).strip()
    if not text or text in _PLACEHOLDER_IDS:
        return None
    return text


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def parse_uuid(raw: Any, field: str = "id") -> uuid.UUID:
    """严格解析 UUID，格式不合法时抛出 ``InvalidArgumentError``。"""

    if isinstance(raw, uuid.UUID):
        return raw
    text = normalize_id(raw)
    if text is None:
        raise InvalidArgumentError(f"{field} is required")
    if not is_uuid(text):
        raise InvalidArgumentError(f'Invalid {field} (expected UUID): "{text}"')
    return uuid.UUID(text)


def parse_optional_uuid(raw: Any) -> Optional[uuid.UUID]:
    """列表过滤场景使用：缺失或格式错误都视为"不过滤"。"""

    text = normalize_id(raw)
    if text is None or not is_uuid(text):
        return None
    return uuid.UUID(text)
