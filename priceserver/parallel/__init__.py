"""
priceserver/parallel - 병렬 처리 모듈

Provider 호출(리전별, 리전/인스턴스 타입별)을 제한된 워커 풀에서
병렬로 실행하고, 작업 단위별 결과를 적용/스킵으로 집계합니다.

주요 구성 요소:
- ParallelTask: add/process 기반 병렬 실행기
- ParallelConfig: 워커 수 상한 설정
- TaskResult / ParallelExecutionResult: 작업 결과 타입

Example:
    from priceserver.parallel import ParallelConfig, ParallelTask, TaskResult

    def fetch(unit):
        return TaskResult.applied(str(unit), provider.fetch_spot_price(unit.region, unit.instance_type))

    task = ParallelTask(fetch, ParallelConfig(max_workers=16), name="spot")
    for unit in units:
        task.add(unit)
    result = task.process()

    if result.has_any_skip():
        print(result.get_skip_summary())
"""

from .errors import categorize_error, get_error_code
from .executor import ParallelConfig, ParallelTask
from .types import (
    ErrorCategory,
    ParallelExecutionResult,
    TaskError,
    TaskResult,
    TaskStatus,
)

__all__: list[str] = [
    # Executor
    "ParallelTask",
    "ParallelConfig",
    # Errors
    "categorize_error",
    "get_error_code",
    # Types
    "ErrorCategory",
    "TaskError",
    "TaskResult",
    "TaskStatus",
    "ParallelExecutionResult",
]
