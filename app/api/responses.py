from typing import Any, Dict, Optional, Union

from fastapi.responses import JSONResponse

from ..core.errors import ErrorCode
from ..core.execution.models import OperationResult

HTTP_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.MISSING_EXECUTION_ID: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.EXECUTION_NOT_FOUND: 404,
    ErrorCode.PLAN_NOT_FOUND: 404,
    ErrorCode.STATE_CONFLICT: 409,
    ErrorCode.EXPIRED: 410,
    ErrorCode.NO_ROUTE: 422,
    ErrorCode.AMOUNT_OUT_OF_BOUNDS: 422,
    ErrorCode.UPSTREAM_UNAVAILABLE: 503,
    ErrorCode.PROVIDER_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Codes renamed on the HTTP surface
_PUBLIC_CODES = {ErrorCode.NOT_FOUND: ErrorCode.EXECUTION_NOT_FOUND}


def error_response(
    code: Union[ErrorCode, str],
    message: Optional[str],
    *,
    extra: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    code = ErrorCode(code)
    code = _PUBLIC_CODES.get(code, code)
    body: Dict[str, Any] = {"ok": False, "errorCode": code.value, "error": message}
    body.update(extra or {})
    return JSONResponse(status_code=HTTP_STATUS.get(code, 500), content=body)


def result_response(result: OperationResult, success_status: int = 200) -> JSONResponse:
    if result.ok:
        return JSONResponse(status_code=success_status, content=result.to_dict())

    extra: Dict[str, Any] = {}
    if result.transient:
        extra["transient"] = True
    if result.execution is not None:
        extra["execution"] = result.execution.to_dict()
    return error_response(result.error_code or ErrorCode.INTERNAL_ERROR, result.message, extra=extra)
