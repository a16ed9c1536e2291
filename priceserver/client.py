"""
priceserver/client.py - Provider별 가격 클라이언트

저장소, 갱신 엔진, 스케줄러를 하나로 묶은 조회/갱신 진입점입니다.

시작 절차 (``create_price_client``):
    1. 시드 스냅샷 로드 (형식 오류는 시작 불가)
    2. 리전 조회로 자격증명 확인 (실패 시 시작 불가)
    3. 설정 시 Spot 가격 1회 갱신

사용법:
    from priceserver.client import create_price_client
    from priceserver.config import RefreshConfig

    client = create_price_client(provider, RefreshConfig(seed_path="builtin-data/price.json"))
    client.start()

    regions = client.list_all_regions()
    price = client.get_instance_type_price("cn-hangzhou", "ecs.g7.large")

    client.stop()
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from priceserver.config import RefreshConfig, settings
from priceserver.parallel import ParallelConfig
from priceserver.pricing.reconciler import Reconciler, RefreshKind, RefreshReport
from priceserver.pricing.scheduler import RefreshOutcome, RefreshScheduler
from priceserver.pricing.seed import export_seed, load_seed
from priceserver.pricing.store import PriceStore
from priceserver.pricing.types import InstanceTypePrice, RegionalInstancePrice
from priceserver.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class PriceClient:
    """Provider 하나에 대한 가격 캐시 클라이언트

    조회 메서드는 모두 저장소의 깊은 복사본을 반환한다.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        store: PriceStore | None = None,
        config: RefreshConfig | None = None,
        on_report: Callable[[RefreshKind, RefreshOutcome], None] | None = None,
    ):
        """초기화

        Args:
            provider: Provider 어댑터
            store: 가격 저장소 (None이면 빈 저장소)
            config: 갱신 설정 (None이면 기본값)
            on_report: 스케줄러 패스 종료 콜백
        """
        self.provider = provider
        self.store = store if store is not None else PriceStore()
        self.config = config or RefreshConfig()
        self.reconciler = Reconciler(
            provider,
            self.store,
            ParallelConfig(max_workers=self.config.max_workers),
            ignored_regions=self.config.ignored_regions,
        )
        self.scheduler = RefreshScheduler(
            self.reconciler,
            on_demand_interval=self.config.on_demand_interval,
            spot_interval=self.config.spot_interval,
            on_report=on_report,
        )

    @property
    def name(self) -> str:
        return self.provider.name

    # =========================================================================
    # 조회
    # =========================================================================

    def list_all_regions(self) -> dict[str, RegionalInstancePrice]:
        """전체 리전 가격"""
        return self.store.snapshot_all()

    def list_region(self, region: str) -> dict[str, RegionalInstancePrice] | None:
        """리전 하나의 가격 (``{region: record}``, 없으면 None)"""
        record = self.store.snapshot_region(region)
        if record is None:
            return None
        return {region: record}

    def get_instance_type_price(self, region: str, instance_type: str) -> InstanceTypePrice | None:
        """인스턴스 타입 가격 (없으면 None)"""
        return self.store.get_instance_type(region, instance_type)

    # =========================================================================
    # 갱신
    # =========================================================================

    def refresh_on_demand_price(self) -> RefreshReport:
        return self.reconciler.refresh_on_demand()

    def refresh_spot_price(self) -> RefreshReport:
        return self.reconciler.refresh_spot()

    def start(self) -> None:
        """백그라운드 주기 갱신 시작"""
        self.scheduler.start()

    def stop(self, timeout: float | None = settings.SCHEDULER_JOIN_TIMEOUT) -> bool:
        """백그라운드 주기 갱신 중지"""
        return self.scheduler.stop(timeout)

    def run(self, stop_event: threading.Event | None = None) -> None:
        """현재 스레드에서 주기 갱신 실행 (중지될 때까지 블로킹)"""
        self.scheduler.run(stop_event)

    # =========================================================================
    # 내보내기
    # =========================================================================

    def export_seed(self, path: str | os.PathLike[str]) -> Path:
        """현재 저장소를 시드 스냅샷 형식으로 저장"""
        return export_seed(self.store, path)

    def __repr__(self) -> str:
        return f"PriceClient(provider={self.provider.name!r}, regions={len(self.store)})"


def create_price_client(
    provider: ProviderAdapter,
    config: RefreshConfig | None = None,
    on_report: Callable[[RefreshKind, RefreshOutcome], None] | None = None,
) -> PriceClient:
    """시드 로드와 시작 검증을 거친 PriceClient 생성

    Args:
        provider: Provider 어댑터
        config: 갱신 설정 (None이면 환경변수에서 로드)
        on_report: 스케줄러 패스 종료 콜백

    Returns:
        PriceClient (스케줄러는 시작되지 않은 상태)

    Raises:
        DataParsingError: 시드 파일을 읽을 수 없거나 형식이 잘못된 경우
        ConfigurationError: 자격증명 문제 또는 조회 가능한 리전이 없는 경우
        TransientProviderError: 시작 시 리전 조회 실패
    """
    config = config or RefreshConfig.from_env()

    if config.seed_path:
        store = load_seed(config.seed_path)
    else:
        logger.warning(f"[{provider.name}] 시드 경로가 설정되지 않아 빈 저장소로 시작합니다")
        store = PriceStore()

    client = PriceClient(provider, store, config, on_report=on_report)

    regions = client.reconciler.discover_regions()
    logger.info(f"[{provider.name}] 가격 클라이언트 생성: 리전 {len(regions)}개, 캐시 리전 {len(store)}개")

    if config.initial_spot_update:
        client.refresh_spot_price()

    return client
