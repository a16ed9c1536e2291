"""
tests/conftest.py - pytest 공통 픽스처

Provider 어댑터 가짜 구현과 시드 샘플 데이터를 제공합니다.

Usage:
    def test_something(fake_provider, price_store):
        # fake_provider: 메모리 기반 ProviderAdapter
        # price_store: 시드 샘플이 채워진 PriceStore
        pass
"""

import json
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from priceserver.pricing.store import PriceStore  # noqa: E402
from priceserver.pricing.types import InstanceTypeShape  # noqa: E402
from priceserver.providers.base import ProviderAdapter  # noqa: E402

# =============================================================================
# 환경 설정
# =============================================================================

_PRICESERVER_ENV_VARS = (
    "PRICESERVER_ON_DEMAND_INTERVAL",
    "PRICESERVER_SPOT_INTERVAL",
    "PRICESERVER_MAX_WORKERS",
    "PRICESERVER_INITIAL_SPOT_UPDATE",
    "PRICESERVER_IGNORED_REGIONS",
    "PRICESERVER_SEED_PATH",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """테스트 환경 설정 (호스트의 PRICESERVER_* 환경변수 제거)"""
    for name in _PRICESERVER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


# =============================================================================
# Provider 가짜 구현
# =============================================================================


class FakeProvider(ProviderAdapter):
    """메모리 데이터를 반환하는 ProviderAdapter

    Attributes:
        regions: discover_regions 결과
        shapes: {region: {instance_type: InstanceTypeShape}}
        on_demand: {region: {instance_type: rate}}
        spot: {(region, instance_type): {zone: rate}}
        errors: {(operation, key): Exception} - key는 region, (region, type) 또는 None
        calls: 호출 기록 [(operation, args)]
    """

    name = "fake"

    def __init__(
        self,
        regions: Optional[List[str]] = None,
        shapes: Optional[Dict[str, Dict[str, InstanceTypeShape]]] = None,
        on_demand: Optional[Dict[str, Dict[str, Any]]] = None,
        spot: Optional[Dict[Tuple[str, str], Any]] = None,
    ):
        self.regions = list(regions) if regions is not None else []
        self.shapes = shapes or {}
        self.on_demand = on_demand or {}
        self.spot = spot or {}
        self.errors: Dict[Tuple[str, Any], Exception] = {}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._lock = threading.Lock()

    def _record(self, operation: str, key: Any, *args: Any) -> None:
        with self._lock:
            self.calls.append((operation, args))
        error = self.errors.get((operation, key))
        if error is not None:
            raise error

    def call_count(self, operation: str) -> int:
        with self._lock:
            return sum(1 for op, _ in self.calls if op == operation)

    def discover_regions(self):
        self._record("discover_regions", None)
        return list(self.regions)

    def list_instance_types(self, region):
        self._record("list_instance_types", region, region)
        return dict(self.shapes.get(region, {}))

    def fetch_on_demand_prices(self):
        self._record("fetch_on_demand_prices", None)
        return {region: dict(prices) for region, prices in self.on_demand.items()}

    def fetch_spot_price(self, region, instance_type):
        self._record("fetch_spot_price", (region, instance_type), region, instance_type)
        prices = self.spot.get((region, instance_type))
        return dict(prices) if isinstance(prices, dict) else prices


# =============================================================================
# 샘플 데이터
# =============================================================================


@pytest.fixture
def shape_t1():
    """인스턴스 타입 T1 사양"""
    return InstanceTypeShape(arch="amd64", vcpu=2, memory=8, gpu=0, zones=("zoneA",))


@pytest.fixture
def sample_seed() -> Dict[str, Any]:
    """리전 R1에 T1 하나가 있는 시드 데이터"""
    return {
        "R1": {
            "instanceTypePrices": {
                "T1": {
                    "arch": "amd64",
                    "vcpu": 2.0,
                    "memory": 8.0,
                    "gpu": 0.0,
                    "zones": ["zoneA"],
                    "onDemandPricePerHour": 0.096,
                    "spotPricePerHour": {"zoneA": 0.03},
                }
            }
        }
    }


@pytest.fixture
def seed_file(tmp_path, sample_seed) -> Path:
    """시드 JSON 파일"""
    path = tmp_path / "seed.json"
    path.write_text(json.dumps(sample_seed, indent=3), encoding="utf-8")
    return path


@pytest.fixture
def price_store(sample_seed) -> PriceStore:
    """시드 샘플이 채워진 저장소"""
    return PriceStore.from_dict(sample_seed)


@pytest.fixture
def fake_provider(shape_t1) -> FakeProvider:
    """R1/T1 시나리오의 Provider (On-Demand 0.10)"""
    return FakeProvider(
        regions=["R1"],
        shapes={"R1": {"T1": shape_t1}},
        on_demand={"R1": {"T1": 0.10}},
    )


@pytest.fixture
def multi_region_provider() -> FakeProvider:
    """리전 3개, 리전당 인스턴스 타입 2개인 Provider"""
    regions = ["cn-beijing", "cn-hangzhou", "cn-shanghai"]
    shapes = {
        region: {
            "ecs.g7.large": InstanceTypeShape("amd64", 2, 8, 0, (f"{region}-a", f"{region}-b")),
            "ecs.g8y.large": InstanceTypeShape("arm64", 2, 8, 0, (f"{region}-a",)),
        }
        for region in regions
    }
    on_demand = {region: {"ecs.g7.large": 0.12, "ecs.g8y.large": 0.09} for region in regions}
    spot = {
        (region, name): {zone: 0.02 for zone in shape.zones}
        for region in regions
        for name, shape in shapes[region].items()
    }
    return FakeProvider(regions=regions, shapes=shapes, on_demand=on_demand, spot=spot)


@pytest.fixture
def make_provider():
    """FakeProvider 생성 함수 (테스트별 데이터 구성용)"""
    return FakeProvider
