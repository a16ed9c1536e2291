"""
priceserver/parallel/errors.py - Provider 호출 에러 분류

작업 핸들러에서 빠져나온 예외를 ``ErrorCategory`` 와 에러 코드로 분류하여
스킵 사유로 기록할 수 있게 합니다. 재시도는 하지 않습니다
(같은 패스 안에서 재시도하지 않고 다음 주기에 다시 조회).
"""

import logging

from botocore.exceptions import (
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from priceserver.exceptions import (
    ConfigurationError,
    DataParsingError,
    TransientProviderError,
    get_error_code_from,
    is_access_denied,
    is_not_found,
    is_throttling,
)

from .types import ErrorCategory, TaskError

logger = logging.getLogger(__name__)


def categorize_error(error: Exception) -> ErrorCategory:
    """예외 객체를 분석하여 ErrorCategory로 분류

    Args:
        error: 분류할 예외

    Returns:
        에러 카테고리
    """
    # 래핑된 Provider 에러는 원인 예외로 분류
    if isinstance(error, TransientProviderError) and error.cause is not None:
        return categorize_error(error.cause)

    if isinstance(error, DataParsingError):
        return ErrorCategory.INVALID_DATA
    if isinstance(error, (ConfigurationError, NoCredentialsError)):
        return ErrorCategory.ACCESS_DENIED

    if is_throttling(error):
        return ErrorCategory.THROTTLING
    if is_access_denied(error):
        return ErrorCategory.ACCESS_DENIED
    if is_not_found(error):
        return ErrorCategory.NOT_FOUND

    error_code = get_error_code_from(error)
    if "Timeout" in error_code:
        return ErrorCategory.TIMEOUT
    if error_code in ("ExpiredToken", "ExpiredTokenException", "InvalidSecurityToken.Expired"):
        return ErrorCategory.EXPIRED_TOKEN
    if error_code in ("ServiceUnavailable", "ServiceUnavailableException", "InternalError"):
        return ErrorCategory.UNAVAILABLE

    # 타임아웃 에러 (botocore 타임아웃은 네트워크 에러의 하위 타입이므로 먼저 확인)
    if isinstance(error, (ConnectTimeoutError, ReadTimeoutError, TimeoutError)):
        return ErrorCategory.TIMEOUT

    # 네트워크 에러
    if isinstance(error, (EndpointConnectionError, ConnectionError, OSError)):
        return ErrorCategory.NETWORK

    return ErrorCategory.UNKNOWN


def get_error_code(error: Exception) -> str:
    """예외 객체에서 에러 코드 문자열 추출

    Provider 에러 코드가 있으면 그 값을, 없으면 예외 클래스명을 반환합니다.
    """
    return get_error_code_from(error) or error.__class__.__name__


def to_task_error(unit: str, error: Exception) -> TaskError:
    """예외를 TaskError로 변환"""
    return TaskError(
        unit=unit,
        category=categorize_error(error),
        error_code=get_error_code(error),
        message=str(error),
        original_exception=error,
    )
