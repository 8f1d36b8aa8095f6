"""
===============================================================================
统一异常处理系统 (Unified Exception Handling System)
===============================================================================

ARPA 引擎的调用方只会收到两种结果：
1. 完整的、已持久化的 RiskScoreRecord
2. 一个有类型的失败（下面的 ARPAError 子类）

不存在「部分成功」的状态。

【异常分类】
-----------
ARPAError (基类)
  ├── PatientNotFound       患者不存在，在任何副作用之前抛出        → 404
  ├── DataSourceError       任一数据域读取失败，计算中止，不写记录  → 503
  ├── PersistenceError      原子写入失败，事务已回滚                → 500
  └── AuditEmissionFailure  审计日志写入失败，只记日志，永不向上传播

【DRF 集成】
-----------
settings.py -> REST_FRAMEWORK -> EXCEPTION_HANDLER 指向 custom_exception_handler，
所有 API 视图里抛出的异常都在这里转成统一 JSON：

    {
        "success": false,
        "errors": [{"code": "PATIENT_NOT_FOUND", "message": "..."}],
        "warnings": []
    }

使用示例：
---------
    from arpa.exceptions import PatientNotFound

    if not exists:
        raise PatientNotFound(patient_id)   # DRF 自动转成 404
"""

from __future__ import annotations

import logging

from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status

logger = logging.getLogger(__name__)


# ============================================================================
# 第一部分：错误代码常量
# ============================================================================

class ErrorCodes:
    """
    错误代码常量类

    命名规则：{实体}_{问题类型}
    前端根据 code 做特定处理，message 只给人看。
    """
    PATIENT_NOT_FOUND = "PATIENT_NOT_FOUND"
    DATA_SOURCE_ERROR = "DATA_SOURCE_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    AUDIT_EMISSION_FAILED = "AUDIT_EMISSION_FAILED"

    # 系统相关
    API_ERROR = "API_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# 第二部分：自定义异常类
# ============================================================================

class ARPAError(Exception):
    """
    ARPA 引擎所有失败的基类

    Attributes:
        code: ErrorCodes 中的常量
        message: 用户友好消息
                 【安全要求】不包含 SQL、连接串、堆栈等内部信息
        status_code: 对应的 HTTP 状态码
    """
    code = ErrorCodes.INTERNAL_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Risk score calculation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class PatientNotFound(ARPAError):
    """患者 ID 不存在。一定在任何其他数据域查询之前抛出，不会产生记录。"""
    code = ErrorCodes.PATIENT_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Patient not found"

    def __init__(self, patient_id=None):
        self.patient_id = patient_id
        super().__init__(self.default_message)


class DataSourceError(ARPAError):
    """
    聚合阶段某个数据域读取失败

    引擎不自动重试；重试策略属于调用方（见 arpa.tasks）。
    """
    code = ErrorCodes.DATA_SOURCE_ERROR
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Clinical data is temporarily unavailable"

    def __init__(self, domain: str, message: str | None = None):
        self.domain = domain
        super().__init__(message)


class PersistenceError(ARPAError):
    """评分记录 + 投影的原子写入失败，事务已整体回滚"""
    code = ErrorCodes.PERSISTENCE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to save risk score"


class AuditEmissionFailure(ARPAError):
    """审计写入失败。由 recorder 捕获并记录日志，计算仍然视为成功。"""
    code = ErrorCodes.AUDIT_EMISSION_FAILED
    default_message = "Failed to write audit log entry"


# ============================================================================
# 第三部分：DRF 异常处理器
# ============================================================================

def _error_response(code: str, message: str, http_status: int) -> Response:
    return Response(
        {
            "success": False,
            "errors": [{"code": code, "message": message}],
            "warnings": []
        },
        status=http_status
    )


def custom_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    DRF 自定义异常处理器

    【配置位置】settings.py -> REST_FRAMEWORK -> EXCEPTION_HANDLER

    处理顺序：
    1. ARPAError 子类 → 各自的状态码
    2. DRF 内置异常（参数校验失败、405 等）→ DRF 的状态码
    3. 其他 → 500 通用消息，详细错误只写服务器日志
    """
    if isinstance(exc, ARPAError):
        return _error_response(exc.code, exc.message, exc.status_code)

    response = exception_handler(exc, context)

    if response is not None:
        return _error_response(ErrorCodes.API_ERROR, str(exc), response.status_code)

    # 【安全关键】真实错误可能包含 SQL、连接串，不能返回给前端
    view = context.get("view")
    logger.exception("Unhandled error in %s", getattr(view, "__name__", view), exc_info=exc)
    return _error_response(
        ErrorCodes.INTERNAL_ERROR,
        "Service temporarily unavailable, please retry later",
        status.HTTP_500_INTERNAL_SERVER_ERROR
    )
