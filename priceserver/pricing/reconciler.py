"""
priceserver/pricing/reconciler.py - 가격 갱신 패스 (Reconciler)

Provider에서 가져온 On-Demand / Spot 가격을 저장소에 병합합니다.
두 패스는 서로 독립적으로 실행되며 각자의 필드만 갱신합니다.

상태 전이:
    IDLE -> DISCOVERING -> FETCHING -> MERGING -> IDLE

On-Demand 패스:
    1. 리전 조회 (ignored_regions 제외)
    2. 전체 리전 가격 스냅샷 1회 조회
    3. 리전별 병렬: 인스턴스 타입 재조회 + 가격 결합
    4. 리전별 원자적 교체 (여전히 조회되는 타입의 기존 Spot 가격은 유지)
       -> 새 목록에 없는 타입은 Spot 데이터까지 함께 사라짐

Spot 패스:
    1. 리전 조회 + 리전별 병렬 인스턴스 타입 조회 (실패한 리전은 스킵)
    2. 리전/인스턴스 타입별 병렬 Spot 가격 조회 (None 또는 빈 응답이면 스킵)
    3. 레코드 단위로 Spot 필드만 교체 (없는 레코드는 목록 사양으로 생성)
       -> 조회되지 않은 타입은 삭제하지 않음

에러 처리:
    - 리전 조회의 ConfigurationError, 필터 후 빈 리전 목록: ConfigurationError 전파
    - 그 외 리전 조회 실패: 리포트에 TransientProviderError 기록, 저장소 변경 없음
    - 단위(리전, 리전/타입) 실패: 해당 단위만 스킵, 이전 값 유지
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any

from priceserver.exceptions import (
    ConfigurationError,
    DataParsingError,
    PriceServerError,
    TransientProviderError,
)
from priceserver.parallel import ParallelConfig, ParallelExecutionResult, ParallelTask, TaskResult
from priceserver.parallel.errors import to_task_error

from .store import PriceStore
from .types import (
    InstanceTypePrice,
    InstanceTypeShape,
    RegionalInstancePrice,
    validate_rate,
    validate_spot_prices,
)

if TYPE_CHECKING:
    from priceserver.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class RefreshKind(Enum):
    """갱신 패스 종류"""

    ON_DEMAND = "on_demand"
    SPOT = "spot"


class RefreshState(Enum):
    """갱신 패스 진행 상태"""

    IDLE = "idle"
    DISCOVERING = "discovering"
    FETCHING = "fetching"
    MERGING = "merging"


@dataclass(frozen=True)
class RegionUnit:
    """리전 단위 작업 명세"""

    region: str

    def __str__(self) -> str:
        return self.region


@dataclass(frozen=True)
class SpotUnit:
    """리전/인스턴스 타입 단위 Spot 조회 작업 명세"""

    region: str
    instance_type: str
    shape: InstanceTypeShape

    def __str__(self) -> str:
        return f"{self.region}/{self.instance_type}"


@dataclass
class RefreshReport:
    """갱신 패스 1회 실행 결과

    Attributes:
        kind: 패스 종류
        provider: Provider 이름
        started_at: 시작 시각
        finished_at: 종료 시각 (진행 중이면 None)
        regions: 갱신 대상 리전 목록
        result: 단위별 적용/스킵 결과
        error: 패스 전체를 중단시킨 에러 (없으면 None)
    """

    kind: RefreshKind
    provider: str
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None
    regions: list[str] = field(default_factory=list)
    result: ParallelExecutionResult = field(default_factory=ParallelExecutionResult)
    error: PriceServerError | None = None

    @property
    def aborted(self) -> bool:
        return self.error is not None

    @property
    def applied_units(self) -> list[str]:
        return sorted(r.unit for r in self.result.applied)

    @property
    def applied_count(self) -> int:
        return self.result.applied_count

    @property
    def skipped_count(self) -> int:
        return self.result.skipped_count

    @property
    def skip_reasons(self) -> dict[str, str]:
        """{unit: reason}"""
        return self.result.get_skip_reasons()

    @property
    def error_counts(self) -> dict[str, int]:
        """{error_category: 개수} (예외로 인한 스킵만 집계)"""
        return {category.value: len(errors) for category, errors in self.result.get_errors_by_category().items()}

    @property
    def retryable_count(self) -> int:
        return sum(1 for error in self.result.get_errors() if error.is_retryable())

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def summary(self) -> str:
        """로그용 한 줄 요약"""
        label = "On-Demand" if self.kind is RefreshKind.ON_DEMAND else "Spot"
        if self.error is not None:
            return f"[{self.provider}] {label} 갱신 중단: {self.error}"
        return (
            f"[{self.provider}] {label} 갱신 완료: 리전 {len(self.regions)}개, "
            f"적용 {self.applied_count}, 스킵 {self.skipped_count} ({self.duration_seconds:.1f}초)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "provider": self.provider,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "regions": list(self.regions),
            "applied": self.applied_units,
            "skipped": self.skip_reasons,
            "error_counts": self.error_counts,
            "retryable": self.retryable_count,
            "error": self.error.to_dict() if self.error is not None else None,
        }


class Reconciler:
    """Provider 데이터를 PriceStore에 병합하는 갱신 엔진

    저장소 변경은 모두 PriceStore의 락을 통해 이루어지므로 별도의 락이 필요 없다.
    ``_state_lock`` 은 상태 값 조회용이다.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        store: PriceStore,
        config: ParallelConfig | None = None,
        ignored_regions: Iterable[str] = (),
    ):
        """초기화

        Args:
            provider: Provider 어댑터
            store: 갱신 대상 저장소
            config: 병렬 실행 설정
            ignored_regions: 갱신에서 제외할 리전
        """
        self.provider = provider
        self.store = store
        self.config = config or ParallelConfig()
        self.ignored_regions = frozenset(ignored_regions)
        self._state = RefreshState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> RefreshState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: RefreshState) -> None:
        with self._state_lock:
            self._state = state
        logger.debug(f"[{self.provider.name}] 상태 전이: {state.value}")

    # =========================================================================
    # 리전 조회
    # =========================================================================

    def discover_regions(self) -> list[str]:
        """갱신 대상 리전 목록 (정렬, 중복 제거, ignored_regions 제외)

        Raises:
            ConfigurationError: 자격증명 문제 또는 대상 리전이 없는 경우
            TransientProviderError: 그 외 조회 실패
        """
        try:
            discovered = list(self.provider.discover_regions())
        except ConfigurationError:
            raise
        except Exception as e:
            raise TransientProviderError.from_exception(self.provider.name, "discover_regions", e) from e

        regions = sorted({r for r in discovered if r not in self.ignored_regions})
        if not regions:
            raise ConfigurationError(f"[{self.provider.name}] 갱신 대상 리전이 없습니다", "regions")
        return regions

    def _call(self, operation: str, unit: str, func, *args):
        """Provider 호출 (SDK 예외를 TransientProviderError로 래핑)"""
        try:
            return func(*args)
        except PriceServerError:
            raise
        except Exception as e:
            raise TransientProviderError.from_exception(self.provider.name, operation, e, unit) from e

    def _list_instance_types(self, region: str) -> dict[str, InstanceTypeShape]:
        shapes = self._call("list_instance_types", region, self.provider.list_instance_types, region)
        source = f"{self.provider.name}.list_instance_types"
        if not isinstance(shapes, Mapping):
            raise DataParsingError(source, "{instance_type: InstanceTypeShape} 형식이어야 함", region)

        result: dict[str, InstanceTypeShape] = {}
        for name, shape in shapes.items():
            if not isinstance(shape, InstanceTypeShape):
                raise DataParsingError(source, f"잘못된 사양 타입: {type(shape).__name__}", f"{region}.{name}")
            result[name] = shape
        return result

    # =========================================================================
    # On-Demand 패스
    # =========================================================================

    def refresh_on_demand(self) -> RefreshReport:
        """On-Demand 가격 갱신 패스

        Returns:
            RefreshReport

        Raises:
            ConfigurationError: 리전 조회 단계의 설정 오류 (저장소 변경 없음)
        """
        report = RefreshReport(kind=RefreshKind.ON_DEMAND, provider=self.provider.name)
        logger.info(f"[{self.provider.name}] On-Demand 가격 갱신 시작")

        try:
            self._set_state(RefreshState.DISCOVERING)
            try:
                report.regions = self.discover_regions()
            except TransientProviderError as e:
                report.error = e
                return report

            self._set_state(RefreshState.FETCHING)
            try:
                price_info = self._fetch_on_demand_snapshot()
            except PriceServerError as e:
                # 스냅샷이 없으면 모든 리전을 같은 사유로 스킵
                report.result = ParallelExecutionResult(
                    results=tuple(
                        TaskResult.skipped(region, f"On-Demand 가격 스냅샷 조회 실패: {e}", to_task_error(region, e))
                        for region in report.regions
                    )
                )
                return report

            task: ParallelTask[RegionUnit] = ParallelTask(
                partial(self._fetch_region_on_demand, price_info),
                self.config,
                name="on-demand",
            )
            for region in report.regions:
                task.add(RegionUnit(region))
            result = task.process()

            self._set_state(RefreshState.MERGING)
            for item in result.applied:
                self._merge_region_on_demand(item.unit, item.data)
            report.result = result
            return report
        finally:
            report.finished_at = datetime.now()
            self._set_state(RefreshState.IDLE)
            self._log_report(report)

    def _fetch_on_demand_snapshot(self) -> Mapping[str, Any]:
        snapshot = self._call("fetch_on_demand_prices", "", self.provider.fetch_on_demand_prices)
        if not isinstance(snapshot, Mapping):
            raise DataParsingError(
                f"{self.provider.name}.fetch_on_demand_prices", "{region: {instance_type: price}} 형식이어야 함"
            )
        return snapshot

    def _fetch_region_on_demand(self, price_info: Mapping[str, Any], unit: RegionUnit) -> TaskResult:
        """리전 하나의 인스턴스 타입 목록에 On-Demand 가격 결합 (워커 스레드)"""
        shapes = self._list_instance_types(unit.region)

        source = f"{self.provider.name}.fetch_on_demand_prices"
        region_prices = price_info.get(unit.region)
        if region_prices is None:
            region_prices = {}
        if not isinstance(region_prices, Mapping):
            raise DataParsingError(source, "{instance_type: price} 형식이어야 함", unit.region)

        record = RegionalInstancePrice()
        for name, shape in shapes.items():
            rate = region_prices.get(name)
            on_demand = validate_rate(rate, source, f"{unit.region}.{name}") if rate is not None else None
            record.instance_type_prices[name] = InstanceTypePrice.from_shape(shape, on_demand)

        logger.debug(f"[{unit.region}] On-Demand 조회 완료: {len(record.instance_type_prices)}개 타입")
        return TaskResult.applied(unit.region, record)

    def _merge_region_on_demand(self, region: str, fresh: RegionalInstancePrice) -> None:
        """리전 레코드 교체 (여전히 조회되는 타입의 Spot 가격 유지)"""

        def build(previous: RegionalInstancePrice | None) -> RegionalInstancePrice:
            if previous is not None:
                for name, price in fresh.instance_type_prices.items():
                    old = previous.instance_type_prices.get(name)
                    if old is not None and old.spot_price_per_hour is not None:
                        price.spot_price_per_hour = dict(old.spot_price_per_hour)
            return fresh

        self.store.swap_region(region, build)

    # =========================================================================
    # Spot 패스
    # =========================================================================

    def refresh_spot(self) -> RefreshReport:
        """Spot 가격 갱신 패스

        Returns:
            RefreshReport

        Raises:
            ConfigurationError: 리전 조회 단계의 설정 오류 (저장소 변경 없음)
        """
        report = RefreshReport(kind=RefreshKind.SPOT, provider=self.provider.name)
        logger.info(f"[{self.provider.name}] Spot 가격 갱신 시작")

        try:
            self._set_state(RefreshState.DISCOVERING)
            try:
                report.regions = self.discover_regions()
            except TransientProviderError as e:
                report.error = e
                return report

            listing: ParallelTask[RegionUnit] = ParallelTask(self._list_region, self.config, name="spot-listing")
            for region in report.regions:
                listing.add(RegionUnit(region))
            listing_result = listing.process()

            self._set_state(RefreshState.FETCHING)
            task: ParallelTask[SpotUnit] = ParallelTask(self._fetch_spot_unit, self.config, name="spot")
            for item in sorted(listing_result.applied, key=lambda r: r.unit):
                for name, shape in sorted(item.data.items()):
                    task.add(SpotUnit(item.unit, name, shape))
            result = task.process()

            self._set_state(RefreshState.MERGING)
            for item in result.applied:
                unit, prices = item.data
                self._merge_spot(unit, prices)

            report.result = ParallelExecutionResult(results=tuple(listing_result.skipped) + tuple(result.results))
            return report
        finally:
            report.finished_at = datetime.now()
            self._set_state(RefreshState.IDLE)
            self._log_report(report)

    def _list_region(self, unit: RegionUnit) -> TaskResult:
        return TaskResult.applied(unit.region, self._list_instance_types(unit.region))

    def _fetch_spot_unit(self, unit: SpotUnit) -> TaskResult:
        """리전/인스턴스 타입 하나의 Spot 가격 조회 (워커 스레드)"""
        label = str(unit)
        prices = self._call(
            "fetch_spot_price", label, self.provider.fetch_spot_price, unit.region, unit.instance_type
        )
        if prices is None or (isinstance(prices, Mapping) and not prices):
            # None 또는 빈 응답: 기존 Spot 가격 유지
            logger.debug(f"[{label}] Spot 가격 없음")
            return TaskResult.skipped(label, "unavailable: Spot 가격 없음")

        validated = validate_spot_prices(prices, f"{self.provider.name}.fetch_spot_price", label)
        return TaskResult.applied(label, (unit, validated))

    def _merge_spot(self, unit: SpotUnit, prices: dict[str, float]) -> None:
        """레코드의 Spot 필드만 교체"""

        def update(record: InstanceTypePrice) -> None:
            record.spot_price_per_hour = dict(prices)

        self.store.merge_instance_type(
            unit.region,
            unit.instance_type,
            update,
            factory=lambda: InstanceTypePrice.from_shape(unit.shape),
        )

    # =========================================================================
    # 로깅
    # =========================================================================

    def _log_report(self, report: RefreshReport) -> None:
        if report.error is not None:
            logger.warning(report.summary())
            return
        if not report.regions:
            # ConfigurationError로 중단된 경우 (호출자가 처리)
            return
        logger.info(report.summary())
        if report.result.has_any_skip():
            logger.warning(report.result.get_skip_summary())
            if report.error_counts:
                logger.warning(
                    f"[{report.provider}] 에러 카테고리: {report.error_counts}, "
                    f"다음 주기 재조회 대상 {report.retryable_count}개"
                )
