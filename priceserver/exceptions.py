"""
priceserver/exceptions.py - 통합 예외 계층 구조

가격 캐시/갱신 엔진 전체에서 사용되는 예외 클래스들을 정의합니다.

예외 계층 구조:
    PriceServerError (베이스)
    ├── ConfigurationError (자격증명 없음, 빈 리전 목록 등 - 갱신 전체 중단)
    ├── TransientProviderError (단일 단위의 네트워크/API 실패 - 해당 단위만 스킵)
    └── DataParsingError (시드 스냅샷 또는 Provider 응답 형식 오류)

Usage:
    from priceserver.exceptions import TransientProviderError

    try:
        prices = provider.fetch_spot_price(region, instance_type)
    except ClientError as e:
        raise TransientProviderError.from_exception(
            provider="aws",
            operation="fetch_spot_price",
            unit=f"{region}/{instance_type}",
            error=e,
        )
"""

from typing import Any, Dict, Optional

# =============================================================================
# 베이스 예외
# =============================================================================


class PriceServerError(Exception):
    """priceserver 기본 예외 클래스

    모든 커스텀 예외의 베이스 클래스입니다.

    Attributes:
        message: 에러 메시지
        cause: 원인 예외 (체이닝용)
        details: 추가 상세 정보
    """

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """예외 정보를 딕셔너리로 반환"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
            "details": self.details,
        }


# =============================================================================
# 설정 관련 예외
# =============================================================================


class ConfigurationError(PriceServerError):
    """설정 수준 오류

    사용 가능한 자격증명이 없거나 조회 가능한 리전이 하나도 없는 경우처럼
    갱신 패스 전체를 진행할 수 없을 때 발생합니다.
    가격 저장소를 변경하기 전에 발생하므로 저장소는 이전 상태로 유지됩니다.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


# =============================================================================
# Provider 호출 관련 예외
# =============================================================================


class TransientProviderError(PriceServerError):
    """단일 작업 단위의 일시적 Provider 호출 실패

    해당 단위(리전 또는 리전/인스턴스 타입)만 스킵하고 기존 캐시 값을 유지합니다.
    같은 패스 안에서는 재시도하지 않으며, 다음 주기에 다시 조회됩니다.
    """

    def __init__(
        self,
        provider: str,
        operation: str,
        unit: str = "",
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        message = f"{provider}.{operation}"
        if unit:
            message = f"{message} [{unit}]"
        if error_code:
            message = f"{message} 실패 ({error_code})"
        if error_message:
            message = f"{message}: {error_message}"

        super().__init__(message, cause)
        self.provider = provider
        self.operation = operation
        self.unit = unit
        self.error_code = error_code
        self.error_message = error_message
        self.details.update(
            {
                "provider": provider,
                "operation": operation,
                "unit": unit,
                "error_code": error_code,
            }
        )

    @classmethod
    def from_exception(
        cls,
        provider: str,
        operation: str,
        error: Exception,
        unit: str = "",
    ) -> "TransientProviderError":
        """임의의 예외(botocore ClientError 포함)로부터 생성

        Args:
            provider: Provider 이름
            operation: 호출한 작업 이름
            error: 원인 예외
            unit: 작업 단위 식별자

        Returns:
            TransientProviderError 인스턴스
        """
        error_code = None
        error_message = None

        # ClientError 형식 파싱
        response = getattr(error, "response", None)
        if isinstance(response, dict):
            error_info = response.get("Error", {})
            error_code = error_info.get("Code")
            error_message = error_info.get("Message")

        return cls(
            provider=provider,
            operation=operation,
            unit=unit,
            error_code=error_code or error.__class__.__name__,
            error_message=error_message,
            cause=error,
        )


# =============================================================================
# 데이터 파싱 관련 예외
# =============================================================================


class DataParsingError(PriceServerError):
    """가격 데이터 형식 오류

    시작 시 시드 스냅샷이 잘못된 경우 치명적 오류로 취급되며,
    실행 중 Provider 응답이 잘못된 경우에는 해당 단위만 스킵합니다.
    """

    def __init__(
        self,
        source: str,
        reason: str,
        path: str = "",
        cause: Optional[Exception] = None,
    ):
        location = f"{source}:{path}" if path else source
        super().__init__(f"데이터 형식 오류 [{location}]: {reason}", cause)
        self.source = source
        self.path = path
        self.reason = reason
        self.details.update({"source": source, "path": path, "reason": reason})


# =============================================================================
# 예외 유틸리티 함수
# =============================================================================


_THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "RateExceeded",
    "Throttling.User",
}

_ACCESS_DENIED_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedAccess",
    "UnauthorizedOperation",
    "InvalidAccessKeyId.NotFound",
    "Forbidden.RAM",
}

_NOT_FOUND_CODES = {
    "ResourceNotFoundException",
    "NotFoundException",
    "InvalidRegionId.NotFound",
    "InvalidInstanceType.NotFound",
}


def get_error_code_from(error: Exception) -> str:
    """예외에서 Provider 에러 코드를 추출 (없으면 빈 문자열)"""
    if isinstance(error, TransientProviderError):
        return error.error_code or ""

    response = getattr(error, "response", None)
    if isinstance(response, dict):
        return str(response.get("Error", {}).get("Code", ""))

    return ""


def is_throttling(error: Exception) -> bool:
    """스로틀링 오류인지 확인

    Args:
        error: 확인할 예외

    Returns:
        스로틀링 오류이면 True
    """
    return get_error_code_from(error) in _THROTTLING_CODES


def is_access_denied(error: Exception) -> bool:
    """액세스 거부 오류인지 확인"""
    if isinstance(error, ConfigurationError):
        return True
    return get_error_code_from(error) in _ACCESS_DENIED_CODES


def is_not_found(error: Exception) -> bool:
    """리소스를 찾을 수 없는 오류인지 확인"""
    return get_error_code_from(error) in _NOT_FOUND_CODES
