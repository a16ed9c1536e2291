"""
priceserver/parallel/executor.py - 범용 병렬 작업 실행기

타입이 지정된 작업 명세를 큐에 쌓아 두었다가 ``process()`` 호출 시
제한된 크기의 ThreadPoolExecutor로 모두 실행합니다.

특징:
- 워커 수 상한이 명시적 (ParallelConfig.max_workers)
- 작업 간 실행 순서 보장 없음
- 작업 단위 실패 격리: 한 작업의 실패가 배치를 중단시키지 않음
- 자동 재시도 없음 (다음 갱신 주기에 다시 조회)
- 배치 간 상태 없음: process()가 큐를 비우므로 재사용 가능

Example:
    def handle(unit: RegionUnit) -> TaskResult:
        shapes = provider.list_instance_types(unit.region)
        return TaskResult.applied(unit.region, shapes)

    task = ParallelTask(handle, ParallelConfig(max_workers=8), name="list-instance-types")
    for region in regions:
        task.add(RegionUnit(region))
    result = task.process()

    print(f"적용: {result.applied_count}, 스킵: {result.skipped_count}")
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from priceserver.config import default_max_workers, settings

from .errors import to_task_error
from .types import ParallelExecutionResult, TaskResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _clear_exception_chain(e: BaseException) -> None:
    """traceback + chained exception 메모리 누수 방지"""
    e.__traceback__ = None
    if e.__context__ is not None:
        e.__context__.__traceback__ = None
    if e.__cause__ is not None:
        e.__cause__.__traceback__ = None


@dataclass
class ParallelConfig:
    """병렬 실행 설정

    Attributes:
        max_workers: 최대 동시 스레드 수 (1~100, 기본: min(32, CPU 수 + 4))
    """

    max_workers: int = field(default_factory=default_max_workers)

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.max_workers > settings.MAX_WORKERS_LIMIT:
            self.max_workers = settings.MAX_WORKERS_LIMIT


class ParallelTask(Generic[T]):
    """제한된 동시성의 병렬 작업 실행기

    핸들러는 작업 명세 하나를 받아 ``TaskResult`` (applied 또는 skipped)를
    반환합니다. 핸들러에서 예외가 빠져나오면 실행기가 이를 분류하여
    해당 작업만 skipped로 기록합니다.
    """

    def __init__(
        self,
        handler: Callable[[T], TaskResult],
        config: ParallelConfig | None = None,
        name: str = "task",
        label: Callable[[T], str] = str,
    ):
        """초기화

        Args:
            handler: 작업 하나를 수행하는 함수
            config: 병렬 실행 설정 (None이면 기본값)
            name: 로그에 표시할 배치 이름
            label: 작업 명세를 단위 식별자 문자열로 변환하는 함수
        """
        self.handler = handler
        self.config = config or ParallelConfig()
        self.name = name
        self._label = label
        self._pending: list[T] = []
        self._lock = threading.Lock()

    def add(self, task: T) -> None:
        """작업 추가"""
        with self._lock:
            self._pending.append(task)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def process(self) -> ParallelExecutionResult:
        """큐에 쌓인 모든 작업을 실행하고 완료될 때까지 대기

        Returns:
            ParallelExecutionResult: 배치 전체 결과
        """
        with self._lock:
            tasks, self._pending = self._pending, []

        if not tasks:
            logger.debug(f"[{self.name}] 실행할 작업이 없습니다")
            return ParallelExecutionResult()

        workers = min(self.config.max_workers, len(tasks))
        logger.debug(f"[{self.name}] 병렬 실행 시작: {len(tasks)}개 작업, max_workers={workers}")

        results: list[TaskResult] = []
        start_time = time.monotonic()

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=self.name) as executor:
            futures = {executor.submit(self._execute_single, task): task for task in tasks}

            for future in as_completed(futures):
                task = futures[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    # _execute_single 내부에서 처리되지 못한 예외 (도달하면 안 됨)
                    unit = self._safe_label(task)
                    logger.error(f"[{self.name}] 작업 실행 중 예외 [{unit}]: {e}")
                    _clear_exception_chain(e)
                    results.append(TaskResult.skipped(unit, f"ExecutorError: {e}", to_task_error(unit, e)))

        total_time = (time.monotonic() - start_time) * 1000
        exec_result = ParallelExecutionResult(results=tuple(results))

        logger.debug(
            f"[{self.name}] 병렬 실행 완료: 적용 {exec_result.applied_count}, "
            f"스킵 {exec_result.skipped_count}, 총 {total_time:.0f}ms"
        )

        return exec_result

    def _execute_single(self, task: T) -> TaskResult:
        """단일 작업 실행 (워커 스레드 내에서 호출)"""
        unit = self._safe_label(task)
        start_time = time.monotonic()

        try:
            result = self.handler(task)
            if not isinstance(result, TaskResult):
                raise TypeError(f"handler must return TaskResult, got {type(result).__name__}")
        except Exception as e:
            error = to_task_error(unit, e)
            logger.warning(f"[{self.name}] 작업 스킵 [{unit}]: {error.error_code} - {e}")
            _clear_exception_chain(e)
            result = TaskResult.skipped(unit, f"{error.category.value}: {error.message}", error)

        result.duration_ms = (time.monotonic() - start_time) * 1000
        return result

    def _safe_label(self, task: T) -> str:
        try:
            return self._label(task)
        except Exception:
            return repr(task)
