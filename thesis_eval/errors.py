"""评分引擎的领域异常与 HTTP 映射。

服务层只抛出这里定义的异常；``register_exception_handlers`` 把它们统一
转换为结构化 JSON 响应::

    {"success": false, "error": "NotFound", "message": "...", "code": "NOT_FOUND"}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EvaluationEngineError(Exception):
    """所有领域异常的基类。"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "InternalError"
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            content["details"] = self.details
        return content


class InvalidArgumentError(EvaluationEngineError):
    """参数格式错误或缺少必填字段（如非法 UUID）。"""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "InvalidArgument"
    code = "INVALID_ARGUMENT"


class NotFoundError(EvaluationEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "NotFound"
    code = "NOT_FOUND"


class ForbiddenError(EvaluationEngineError):
    """角色或归属校验失败；在任何写操作之前抛出。"""

    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    code = "FORBIDDEN"


class ConflictError(EvaluationEngineError):
    """唯一约束冲突，例如同一排期同一评委重复创建评价。"""

    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"
    code = "CONFLICT"


class InvalidStateError(ConflictError):
    """当前状态不允许该状态迁移。"""

    error = "InvalidState"
    code = "STATE_TRANSITION_INVALID"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(EvaluationEngineError)
    async def handle_engine_error(
        _request: Request, exc: EvaluationEngineError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Unhandled engine error: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
