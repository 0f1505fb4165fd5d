"""数值转换工具：宽松的数字归一化与十进制舍入。"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional


def coerce_number(value: Any) -> Optional[float]:
    """把输入转换为有限浮点数；无法转换时返回 ``None``（视为未设置）。

    布尔值不被当作数字，空字符串、NaN 与无穷大同样返回 ``None``。
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal(0)
    return Decimal(str(value))


def round_half_up(value: Decimal, places: int = 2) -> Decimal:
    """与 PostgreSQL ``round(numeric, n)`` 一致的四舍五入。"""

    quantum = Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)
