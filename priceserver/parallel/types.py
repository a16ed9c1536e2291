"""
priceserver/parallel/types.py - 병렬 실행 결과 타입

작업 단위별 결과를 ``적용(applied)`` / ``스킵(skipped, 사유)`` 두 가지로 표현하고,
배치 전체 결과를 집계합니다.

주요 구성 요소:
- ErrorCategory: 에러 분류
- TaskStatus: 작업 결과 상태
- TaskError: 실패 상세 정보
- TaskResult: 단일 작업 결과
- ParallelExecutionResult: 배치 전체 결과
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """에러 카테고리"""

    THROTTLING = "throttling"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    TIMEOUT = "timeout"
    EXPIRED_TOKEN = "expired_token"
    INVALID_DATA = "invalid_data"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


# 다음 주기에 다시 시도하면 회복될 가능성이 있는 카테고리
_RETRYABLE_CATEGORIES = {
    ErrorCategory.THROTTLING,
    ErrorCategory.NETWORK,
    ErrorCategory.TIMEOUT,
    ErrorCategory.UNAVAILABLE,
}


class TaskStatus(Enum):
    """작업 결과 상태"""

    APPLIED = "applied"
    SKIPPED = "skipped"


@dataclass
class TaskError:
    """작업 실패 상세 정보

    Attributes:
        unit: 작업 단위 식별자 (예: "cn-hangzhou", "cn-hangzhou/ecs.g7.large")
        category: 에러 카테고리
        error_code: Provider 에러 코드 또는 예외 클래스명
        message: 에러 메시지
        original_exception: 원본 예외
        timestamp: 발생 시각
    """

    unit: str
    category: ErrorCategory
    error_code: str
    message: str
    original_exception: Exception | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def is_retryable(self) -> bool:
        """다음 주기에 재조회할 가치가 있는 에러인지"""
        return self.category in _RETRYABLE_CATEGORIES

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit,
            "category": self.category.value,
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return f"[{self.unit}] {self.error_code}: {self.message}"


@dataclass
class TaskResult:
    """단일 작업 결과

    Attributes:
        unit: 작업 단위 식별자
        status: APPLIED 또는 SKIPPED
        data: 작업이 만든 데이터 (병합 단계에서 사용)
        reason: 스킵 사유
        error: 실패 상세 정보 (예외로 인한 스킵일 때)
        duration_ms: 실행 시간 (밀리초)
    """

    unit: str
    status: TaskStatus
    data: Any = None
    reason: str = ""
    error: TaskError | None = None
    duration_ms: float = 0.0

    @classmethod
    def applied(cls, unit: str, data: Any = None) -> TaskResult:
        return cls(unit=unit, status=TaskStatus.APPLIED, data=data)

    @classmethod
    def skipped(cls, unit: str, reason: str, error: TaskError | None = None) -> TaskResult:
        return cls(unit=unit, status=TaskStatus.SKIPPED, reason=reason, error=error)

    @property
    def is_applied(self) -> bool:
        return self.status is TaskStatus.APPLIED

    def __str__(self) -> str:
        if self.is_applied:
            return f"[{self.unit}] APPLIED ({self.duration_ms:.0f}ms)"
        return f"[{self.unit}] SKIPPED: {self.reason} ({self.duration_ms:.0f}ms)"


@dataclass
class ParallelExecutionResult:
    """배치 전체 실행 결과

    Attributes:
        results: 개별 작업 결과 (완료 순서)
    """

    results: Sequence[TaskResult] = ()

    @property
    def applied(self) -> list[TaskResult]:
        return [r for r in self.results if r.is_applied]

    @property
    def skipped(self) -> list[TaskResult]:
        return [r for r in self.results if not r.is_applied]

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def applied_count(self) -> int:
        return sum(1 for r in self.results if r.is_applied)

    @property
    def skipped_count(self) -> int:
        return self.total_count - self.applied_count

    def has_any_skip(self) -> bool:
        return self.skipped_count > 0

    def get_skip_reasons(self) -> dict[str, str]:
        """스킵된 단위별 사유 반환

        Returns:
            {unit: reason} 딕셔너리
        """
        return {r.unit: r.reason for r in self.results if not r.is_applied}

    def get_errors(self) -> list[TaskError]:
        return [r.error for r in self.results if r.error is not None]

    def get_errors_by_category(self) -> dict[ErrorCategory, list[TaskError]]:
        """카테고리별 에러 그룹화"""
        grouped: dict[ErrorCategory, list[TaskError]] = {}
        for error in self.get_errors():
            grouped.setdefault(error.category, []).append(error)
        return grouped

    def get_skip_summary(self, limit: int = 10) -> str:
        """스킵 요약 문자열 (로그용)

        Args:
            limit: 출력할 최대 단위 수

        Returns:
            예: "총 2개 단위 스킵\n  - cn-hangzhou: ..."
        """
        skipped = self.skipped
        if not skipped:
            return "스킵된 단위 없음"

        lines = [f"총 {len(skipped)}개 단위 스킵"]
        for r in sorted(skipped, key=lambda item: item.unit)[:limit]:
            lines.append(f"  - {r.unit}: {r.reason}")
        if len(skipped) > limit:
            lines.append(f"  ... 외 {len(skipped) - limit}개")
        return "\n".join(lines)
