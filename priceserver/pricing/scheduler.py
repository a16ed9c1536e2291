"""
priceserver/pricing/scheduler.py - 주기적 갱신 스케줄러

On-Demand(기본 7일)와 Spot(기본 30분) 두 개의 독립된 주기로
Reconciler의 갱신 패스를 실행합니다.

동작:
    - 패스는 스케줄러 스레드에서 동기적으로 실행되며, 병합이 끝난 뒤에
      다음 대기가 시작된다.
    - 두 주기가 동시에 도래하면 On-Demand를 먼저 실행한다.
    - 패스 실행 중 놓친 주기는 한 번으로 합쳐진다 (ticker 방식).
    - 패스나 on_report 콜백에서 발생한 예외는 로그만 남기고 루프를 계속한다.
    - 중지 요청은 패스 사이에서만 반영된다. 진행 중인 패스는 끝까지 실행되고,
      중지 이후 새 패스는 시작되지 않는다.

사용법:
    scheduler = RefreshScheduler(reconciler, on_demand_interval=604800, spot_interval=1800)
    scheduler.start()
    ...
    scheduler.stop()
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from priceserver.config import settings
from priceserver.exceptions import ConfigurationError

from .reconciler import Reconciler, RefreshKind, RefreshReport

logger = logging.getLogger(__name__)

RefreshOutcome = RefreshReport | ConfigurationError


def next_deadline(deadline: float, interval: float, now: float) -> float:
    """``deadline + k * interval`` 중 ``now`` 보다 큰 가장 작은 값

    Args:
        deadline: 방금 처리한 주기의 예정 시각
        interval: 주기 (초)
        now: 현재 시각

    Returns:
        다음 예정 시각
    """
    if now < deadline:
        return deadline + interval
    missed = int((now - deadline) // interval) + 1
    return deadline + missed * interval


class RefreshScheduler:
    """두 주기의 갱신 패스를 실행하는 스케줄러

    Attributes:
        reconciler: 갱신 엔진
        on_demand_interval: On-Demand 주기 (초)
        spot_interval: Spot 주기 (초)
        on_report: 패스 종료 시 호출되는 콜백 ``(kind, RefreshReport | ConfigurationError)``
    """

    def __init__(
        self,
        reconciler: Reconciler,
        on_demand_interval: float,
        spot_interval: float,
        on_report: Callable[[RefreshKind, RefreshOutcome], None] | None = None,
    ):
        if on_demand_interval <= 0 or spot_interval <= 0:
            raise ValueError(f"interval must be > 0, got on_demand={on_demand_interval}, spot={spot_interval}")

        self.reconciler = reconciler
        self.on_demand_interval = on_demand_interval
        self.spot_interval = spot_interval
        self.on_report = on_report

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._reports_lock = threading.Lock()
        self._last_reports: dict[RefreshKind, RefreshOutcome] = {}

    @property
    def last_reports(self) -> dict[RefreshKind, RefreshOutcome]:
        """종류별 마지막 패스 결과"""
        with self._reports_lock:
            return dict(self._last_reports)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _interval(self, kind: RefreshKind) -> float:
        return self.on_demand_interval if kind is RefreshKind.ON_DEMAND else self.spot_interval

    def run(self, stop_event: threading.Event | None = None) -> None:
        """중지될 때까지 주기적으로 갱신 패스 실행 (블로킹)

        Args:
            stop_event: 중지 신호 (None이면 내부 이벤트 사용, ``stop()`` 으로 중지)
        """
        stop = stop_event or self._stop_event
        start = time.monotonic()
        deadlines = {kind: start + self._interval(kind) for kind in RefreshKind}

        logger.info(
            f"[{self.reconciler.provider.name}] 갱신 스케줄러 시작 "
            f"(On-Demand {self.on_demand_interval}초, Spot {self.spot_interval}초)"
        )

        while not stop.is_set():
            now = time.monotonic()
            due = [kind for kind in RefreshKind if deadlines[kind] <= now]

            if not due:
                if stop.wait(min(deadlines.values()) - now):
                    break
                continue

            # 동시에 도래하면 On-Demand 우선 (RefreshKind 정의 순서)
            kind = due[0]
            self._run_pass(kind)
            deadlines[kind] = next_deadline(deadlines[kind], self._interval(kind), time.monotonic())

        logger.info(f"[{self.reconciler.provider.name}] 갱신 스케줄러 종료")

    def _run_pass(self, kind: RefreshKind) -> None:
        refresh = self.reconciler.refresh_on_demand if kind is RefreshKind.ON_DEMAND else self.reconciler.refresh_spot

        outcome: RefreshOutcome
        try:
            outcome = refresh()
        except ConfigurationError as e:
            logger.error(f"[{self.reconciler.provider.name}] {kind.value} 갱신 중단 (설정 오류): {e}")
            outcome = e
        except Exception:
            # 예상하지 못한 에러도 스케줄러 스레드는 유지 (다음 주기에 재시도)
            logger.exception(f"[{self.reconciler.provider.name}] {kind.value} 갱신 중 예기치 않은 오류")
            return

        with self._reports_lock:
            self._last_reports[kind] = outcome

        if self.on_report is not None:
            try:
                self.on_report(kind, outcome)
            except Exception:
                logger.exception(f"[{self.reconciler.provider.name}] on_report 콜백 오류 ({kind.value})")

    def start(self) -> None:
        """데몬 스레드에서 스케줄러 실행"""
        if self.is_running:
            logger.warning("갱신 스케줄러가 이미 실행 중입니다")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            name=f"refresh-{self.reconciler.provider.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = settings.SCHEDULER_JOIN_TIMEOUT) -> bool:
        """스케줄러 중지 요청 후 스레드 종료 대기

        진행 중인 패스는 중단하지 않으므로 ``timeout`` 안에 끝나지 않을 수 있다.

        Returns:
            스레드가 종료되었으면 True
        """
        self._stop_event.set()
        if self._thread is None:
            return True

        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"갱신 스케줄러가 {timeout}초 안에 종료되지 않음 (진행 중인 패스 대기)")
            return False

        self._thread = None
        return True
