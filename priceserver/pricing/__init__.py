"""
priceserver/pricing - 가격 캐시와 갱신 엔진

구성 요소:
- types: 가격 데이터 모델 및 JSON 스키마 변환
- store: 동시성 안전 가격 저장소 (PriceStore)
- seed: 시드 스냅샷 로드/내보내기
- reconciler: On-Demand / Spot 갱신 패스
- scheduler: 주기적 갱신 스케줄러
"""

from .lock import ReadWriteLock
from .reconciler import (
    Reconciler,
    RefreshKind,
    RefreshReport,
    RefreshState,
    RegionUnit,
    SpotUnit,
)
from .scheduler import RefreshScheduler
from .seed import dumps_seed, export_seed, load_seed, loads_seed
from .store import PriceStore
from .types import InstanceTypePrice, InstanceTypeShape, RegionalInstancePrice

__all__: list[str] = [
    # Store
    "PriceStore",
    "ReadWriteLock",
    # Types
    "InstanceTypePrice",
    "InstanceTypeShape",
    "RegionalInstancePrice",
    # Seed
    "load_seed",
    "loads_seed",
    "dumps_seed",
    "export_seed",
    # Refresh
    "Reconciler",
    "RefreshKind",
    "RefreshReport",
    "RefreshState",
    "RefreshScheduler",
    "RegionUnit",
    "SpotUnit",
]
