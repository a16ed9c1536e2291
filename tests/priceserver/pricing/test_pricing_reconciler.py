"""
tests/priceserver/pricing/test_pricing_reconciler.py - Reconciler 갱신 패스 테스트
"""

import threading

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from priceserver.exceptions import ConfigurationError, TransientProviderError
from priceserver.parallel import ErrorCategory, ParallelConfig
from priceserver.pricing.reconciler import (
    Reconciler,
    RefreshKind,
    RefreshReport,
    RefreshState,
    RegionUnit,
    SpotUnit,
)
from priceserver.pricing.seed import dumps_seed
from priceserver.pricing.store import PriceStore
from priceserver.pricing.types import InstanceTypeShape


@pytest.fixture
def reconciler(fake_provider, price_store):
    """R1/T1 시드 + On-Demand 0.10 Provider"""
    return Reconciler(fake_provider, price_store, ParallelConfig(max_workers=4))


class TestTaskUnits:
    """작업 명세 테스트"""

    def test_labels(self, shape_t1):
        assert str(RegionUnit("cn-hangzhou")) == "cn-hangzhou"
        assert str(SpotUnit("cn-hangzhou", "ecs.g7.large", shape_t1)) == "cn-hangzhou/ecs.g7.large"


class TestDiscoverRegions:
    """리전 조회 테스트"""

    def test_sorted_and_deduplicated(self, make_provider):
        provider = make_provider(regions=["cn-shanghai", "cn-beijing", "cn-shanghai"])
        reconciler = Reconciler(provider, PriceStore())

        assert reconciler.discover_regions() == ["cn-beijing", "cn-shanghai"]

    def test_ignored_regions(self, make_provider):
        provider = make_provider(regions=["ap-southeast-2", "cn-beijing"])
        reconciler = Reconciler(provider, PriceStore(), ignored_regions={"ap-southeast-2"})

        assert reconciler.discover_regions() == ["cn-beijing"]

    def test_empty_after_filter(self, make_provider):
        """필터 후 리전이 없으면 ConfigurationError"""
        provider = make_provider(regions=["ap-southeast-2"])
        reconciler = Reconciler(provider, PriceStore(), ignored_regions={"ap-southeast-2"})

        with pytest.raises(ConfigurationError) as exc_info:
            reconciler.discover_regions()

        assert exc_info.value.config_key == "regions"

    def test_transient_failure_wrapped(self, make_provider):
        provider = make_provider(regions=["R1"])
        provider.errors[("discover_regions", None)] = EndpointConnectionError(endpoint_url="https://ecs")
        reconciler = Reconciler(provider, PriceStore())

        with pytest.raises(TransientProviderError) as exc_info:
            reconciler.discover_regions()

        assert exc_info.value.operation == "discover_regions"


class TestRefreshOnDemand:
    """On-Demand 패스 테스트"""

    def test_updates_on_demand_and_keeps_spot(self, reconciler, price_store):
        """R1/T1: On-Demand 0.096 -> 0.10, Spot {zoneA: 0.03} 유지"""
        report = reconciler.refresh_on_demand()

        price = price_store.get_instance_type("R1", "T1")
        assert price.on_demand_price_per_hour == 0.10
        assert price.spot_price_per_hour == {"zoneA": 0.03}
        assert report.kind is RefreshKind.ON_DEMAND
        assert report.applied_units == ["R1"]
        assert report.skipped_count == 0
        assert report.aborted is False
        assert reconciler.state is RefreshState.IDLE

    def test_unlisted_type_removed(self, reconciler, fake_provider, price_store):
        """R1/T1: 목록에서 빠진 T1은 Spot 데이터까지 삭제"""
        reconciler.refresh_on_demand()
        fake_provider.shapes["R1"] = {"T2": InstanceTypeShape("arm64", 4, 16, 0, ("zoneA",))}
        fake_provider.on_demand["R1"] = {"T2": 0.2}

        reconciler.refresh_on_demand()

        assert price_store.get_instance_type("R1", "T1") is None
        t2 = price_store.get_instance_type("R1", "T2")
        assert t2.on_demand_price_per_hour == 0.2
        assert t2.spot_price_per_hour is None

    def test_missing_rate_is_none(self, reconciler, fake_provider, price_store):
        """가격 스냅샷에 없는 타입은 On-Demand 가격 None"""
        fake_provider.on_demand = {}

        reconciler.refresh_on_demand()

        price = price_store.get_instance_type("R1", "T1")
        assert price.on_demand_price_per_hour is None
        assert price.spot_price_per_hour == {"zoneA": 0.03}

    def test_snapshot_failure_skips_all_regions(self, multi_region_provider):
        """가격 스냅샷 조회 실패 시 모든 리전 스킵, 저장소 변경 없음"""
        multi_region_provider.errors[("fetch_on_demand_prices", None)] = ClientError(
            {"Error": {"Code": "ServiceUnavailable", "Message": "down"}}, "DescribePrice"
        )
        store = PriceStore()
        reconciler = Reconciler(multi_region_provider, store)

        report = reconciler.refresh_on_demand()

        assert report.applied_count == 0
        assert sorted(report.skip_reasons) == ["cn-beijing", "cn-hangzhou", "cn-shanghai"]
        assert all(error.category == ErrorCategory.UNAVAILABLE for error in report.result.get_errors())
        assert len(store) == 0
        assert multi_region_provider.call_count("list_instance_types") == 0

    def test_region_failure_isolated(self, multi_region_provider):
        """한 리전 실패 시 해당 리전만 이전 값 유지"""
        store = PriceStore()
        reconciler = Reconciler(multi_region_provider, store)
        reconciler.refresh_on_demand()

        multi_region_provider.errors[("list_instance_types", "cn-hangzhou")] = ClientError(
            {"Error": {"Code": "Throttling", "Message": "slow down"}}, "DescribeInstanceTypes"
        )
        multi_region_provider.on_demand = {
            region: {"ecs.g7.large": 0.5, "ecs.g8y.large": 0.4} for region in multi_region_provider.regions
        }

        report = reconciler.refresh_on_demand()

        assert report.applied_units == ["cn-beijing", "cn-shanghai"]
        assert list(report.skip_reasons) == ["cn-hangzhou"]
        assert report.skip_reasons["cn-hangzhou"].startswith("throttling")
        assert store.get_instance_type("cn-hangzhou", "ecs.g7.large").on_demand_price_per_hour == 0.12
        assert store.get_instance_type("cn-beijing", "ecs.g7.large").on_demand_price_per_hour == 0.5

    def test_invalid_rate_skips_region(self, multi_region_provider):
        """음수 가격은 해당 리전만 invalid_data로 스킵"""
        multi_region_provider.on_demand["cn-shanghai"]["ecs.g7.large"] = -1
        store = PriceStore()
        reconciler = Reconciler(multi_region_provider, store)

        report = reconciler.refresh_on_demand()

        assert list(report.skip_reasons) == ["cn-shanghai"]
        assert report.result.get_errors()[0].category == ErrorCategory.INVALID_DATA
        assert "cn-shanghai" not in store

    def test_non_mapping_region_prices_skips_region(self, multi_region_provider, monkeypatch):
        """리전 가격이 빈 리스트여도 객체가 아니면 invalid_data로 스킵"""
        snapshot = {region: {"ecs.g7.large": 0.12, "ecs.g8y.large": 0.09} for region in multi_region_provider.regions}
        snapshot["cn-shanghai"] = []
        monkeypatch.setattr(multi_region_provider, "fetch_on_demand_prices", lambda: snapshot)
        store = PriceStore()

        report = Reconciler(multi_region_provider, store).refresh_on_demand()

        assert list(report.skip_reasons) == ["cn-shanghai"]
        assert report.result.get_errors()[0].category == ErrorCategory.INVALID_DATA
        assert "cn-shanghai" not in store

    def test_invalid_shape_skips_region(self, make_provider):
        provider = make_provider(regions=["R1"], shapes={"R1": {"T1": {"vcpu": 2}}})
        store = PriceStore()

        report = Reconciler(provider, store).refresh_on_demand()

        assert report.skipped_count == 1
        assert len(store) == 0

    def test_configuration_error_aborts(self, reconciler, fake_provider, price_store):
        """리전 조회의 ConfigurationError는 전파, 저장소 변경 없음"""
        fake_provider.errors[("discover_regions", None)] = ConfigurationError("자격증명 없음", "credentials")
        before = dumps_seed(price_store)

        with pytest.raises(ConfigurationError):
            reconciler.refresh_on_demand()

        assert dumps_seed(price_store) == before
        assert reconciler.state is RefreshState.IDLE
        assert fake_provider.call_count("fetch_on_demand_prices") == 0

    def test_transient_discovery_failure(self, reconciler, fake_provider, price_store):
        """리전 조회 일시 실패는 리포트에 기록, 저장소 변경 없음"""
        fake_provider.errors[("discover_regions", None)] = EndpointConnectionError(endpoint_url="https://ecs")
        before = dumps_seed(price_store)

        report = reconciler.refresh_on_demand()

        assert report.aborted is True
        assert isinstance(report.error, TransientProviderError)
        assert report.regions == []
        assert dumps_seed(price_store) == before
        assert reconciler.state is RefreshState.IDLE

    def test_state_transitions(self, reconciler, fake_provider):
        """DISCOVERING -> FETCHING -> MERGING -> IDLE"""
        states = []
        original_list = fake_provider.list_instance_types
        original_discover = fake_provider.discover_regions

        def discover():
            states.append(reconciler.state)
            return original_discover()

        def list_instance_types(region):
            states.append(reconciler.state)
            return original_list(region)

        fake_provider.discover_regions = discover
        fake_provider.list_instance_types = list_instance_types
        original_swap = reconciler.store.swap_region

        def swap_region(region, builder):
            states.append(reconciler.state)
            return original_swap(region, builder)

        reconciler.store.swap_region = swap_region

        reconciler.refresh_on_demand()

        assert states == [RefreshState.DISCOVERING, RefreshState.FETCHING, RefreshState.MERGING]
        assert reconciler.state is RefreshState.IDLE

    def test_idempotent(self, multi_region_provider):
        """변경 없는 Provider에 대해 두 번 실행해도 같은 직렬화 결과"""
        store = PriceStore()
        reconciler = Reconciler(multi_region_provider, store)

        reconciler.refresh_on_demand()
        first = dumps_seed(store)
        reconciler.refresh_on_demand()

        assert dumps_seed(store) == first


class TestRefreshSpot:
    """Spot 패스 테스트"""

    def test_updates_spot_only(self, reconciler, fake_provider, price_store):
        fake_provider.spot[("R1", "T1")] = {"zoneA": 0.04}

        report = reconciler.refresh_spot()

        price = price_store.get_instance_type("R1", "T1")
        assert price.spot_price_per_hour == {"zoneA": 0.04}
        assert price.on_demand_price_per_hour == 0.096
        assert report.kind is RefreshKind.SPOT
        assert report.applied_units == ["R1/T1"]

    def test_spot_mapping_replaced(self, reconciler, fake_provider, price_store):
        """조회된 존 목록으로 Spot 매핑 전체 교체"""
        fake_provider.spot[("R1", "T1")] = {"zoneB": 0.05}

        reconciler.refresh_spot()

        assert price_store.get_instance_type("R1", "T1").spot_price_per_hour == {"zoneB": 0.05}

    def test_unavailable_is_skipped(self, reconciler, price_store):
        """Spot 가격이 없으면 스킵, 레코드 유지"""
        report = reconciler.refresh_spot()

        assert report.skip_reasons == {"R1/T1": "unavailable: Spot 가격 없음"}
        assert price_store.get_instance_type("R1", "T1").spot_price_per_hour == {"zoneA": 0.03}

    def test_empty_spot_response_is_skipped(self, reconciler, fake_provider, price_store):
        """빈 Spot 응답도 가격 없음으로 스킵, 기존 Spot 가격 유지"""
        fake_provider.spot[("R1", "T1")] = {}

        report = reconciler.refresh_spot()

        assert report.applied_units == []
        assert report.skip_reasons == {"R1/T1": "unavailable: Spot 가격 없음"}
        assert price_store.get_instance_type("R1", "T1").spot_price_per_hour == {"zoneA": 0.03}

    def test_absent_record_created_from_shape(self, make_provider):
        """저장소에 없는 타입은 목록 사양으로 생성"""
        shape = InstanceTypeShape("arm64", 4, 16, 1, ("zoneA", "zoneB"))
        provider = make_provider(
            regions=["R1"],
            shapes={"R1": {"T3": shape}},
            spot={("R1", "T3"): {"zoneA": 0.5, "zoneB": 0.6}},
        )
        store = PriceStore()

        Reconciler(provider, store).refresh_spot()

        price = store.get_instance_type("R1", "T3")
        assert price.arch == "arm64"
        assert price.gpu == 1.0
        assert price.zones == ["zoneA", "zoneB"]
        assert price.on_demand_price_per_hour is None
        assert price.spot_price_per_hour == {"zoneA": 0.5, "zoneB": 0.6}

    def test_uncovered_types_untouched(self, reconciler, fake_provider, price_store):
        """목록에 없는 타입은 Spot 패스에서 삭제하지 않음"""
        fake_provider.shapes["R1"] = {}

        report = reconciler.refresh_spot()

        assert report.result.total_count == 0
        assert price_store.get_instance_type("R1", "T1") is not None

    def test_listing_failure_skips_region(self, multi_region_provider):
        multi_region_provider.errors[("list_instance_types", "cn-beijing")] = EndpointConnectionError(
            endpoint_url="https://ecs.cn-beijing"
        )
        store = PriceStore()

        report = Reconciler(multi_region_provider, store).refresh_spot()

        assert "cn-beijing" in report.skip_reasons
        assert report.applied_count == 4
        assert "cn-beijing" not in store
        assert multi_region_provider.call_count("fetch_spot_price") == 4

    def test_unit_failure_isolated(self, multi_region_provider):
        """인스턴스 타입 하나의 실패는 해당 단위만 스킵"""
        multi_region_provider.errors[("fetch_spot_price", ("cn-hangzhou", "ecs.g7.large"))] = TimeoutError("slow")
        store = PriceStore()

        report = Reconciler(multi_region_provider, store).refresh_spot()

        assert list(report.skip_reasons) == ["cn-hangzhou/ecs.g7.large"]
        assert report.result.get_errors()[0].category == ErrorCategory.TIMEOUT
        assert report.applied_count == 5
        assert store.get_instance_type("cn-hangzhou", "ecs.g7.large") is None
        assert store.get_instance_type("cn-hangzhou", "ecs.g8y.large") is not None

    def test_invalid_spot_price_skipped(self, reconciler, fake_provider, price_store):
        fake_provider.spot[("R1", "T1")] = {"zoneA": float("nan")}

        report = reconciler.refresh_spot()

        assert report.result.get_errors()[0].category == ErrorCategory.INVALID_DATA
        assert price_store.get_instance_type("R1", "T1").spot_price_per_hour == {"zoneA": 0.03}

    def test_configuration_error_aborts(self, reconciler, fake_provider):
        fake_provider.regions = []

        with pytest.raises(ConfigurationError):
            reconciler.refresh_spot()

        assert fake_provider.call_count("list_instance_types") == 0
        assert reconciler.state is RefreshState.IDLE


class TestPassInteraction:
    """On-Demand/Spot 패스 상호작용 테스트"""

    def test_spot_then_on_demand_keeps_spot(self, multi_region_provider):
        """Spot 패스 후 On-Demand 패스를 실행해도 Spot 가격 유지"""
        store = PriceStore()
        reconciler = Reconciler(multi_region_provider, store)

        reconciler.refresh_spot()
        reconciler.refresh_on_demand()

        for region in multi_region_provider.regions:
            price = store.get_instance_type(region, "ecs.g7.large")
            assert price.on_demand_price_per_hour == 0.12
            assert price.spot_price_per_hour == {f"{region}-a": 0.02, f"{region}-b": 0.02}

    def test_all_rates_non_negative(self, multi_region_provider):
        store = PriceStore()
        reconciler = Reconciler(multi_region_provider, store)

        reconciler.refresh_on_demand()
        reconciler.refresh_spot()

        for record in store.snapshot_all().values():
            for price in record.instance_type_prices.values():
                assert price.on_demand_price_per_hour >= 0
                assert all(rate >= 0 for rate in price.spot_price_per_hour.values())

    def test_readers_during_refresh(self, multi_region_provider):
        """갱신 중 읽기는 항상 한 시점의 일관된 레코드를 봄 (패스마다 가격 변경)"""
        store = PriceStore()
        reconciler = Reconciler(multi_region_provider, store)
        reconciler.refresh_on_demand()
        reconciler.refresh_spot()
        zones = {"cn-hangzhou-a", "cn-hangzhou-b"}
        on_demand_rates = {0.12 + i / 100 for i in range(11)}
        stop = threading.Event()
        violations = []

        def reader():
            while not stop.is_set():
                price = store.get_instance_type("cn-hangzhou", "ecs.g7.large")
                spot_rates = set(price.spot_price_per_hour.values())
                # 한 번의 Spot 조회는 모든 존에 같은 가격을 돌려주므로 섞이면 값이 둘 이상
                if (
                    price.on_demand_price_per_hour not in on_demand_rates
                    or set(price.spot_price_per_hour) != zones
                    or len(spot_rates) != 1
                ):
                    violations.append(price)

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for i in range(1, 11):
            for region in multi_region_provider.regions:
                multi_region_provider.on_demand[region]["ecs.g7.large"] = 0.12 + i / 100
            for key, prices in multi_region_provider.spot.items():
                multi_region_provider.spot[key] = {zone: 0.02 + i / 1000 for zone in prices}
            reconciler.refresh_on_demand()
            reconciler.refresh_spot()
        stop.set()
        for t in threads:
            t.join(timeout=5)

        assert violations == []
        final = store.get_instance_type("cn-hangzhou", "ecs.g7.large")
        assert final.on_demand_price_per_hour == pytest.approx(0.22)
        assert final.spot_price_per_hour == {zone: pytest.approx(0.03) for zone in zones}


class TestRefreshReport:
    """RefreshReport 테스트"""

    def test_summary_and_dict(self, reconciler):
        report = reconciler.refresh_on_demand()

        assert "On-Demand 갱신 완료" in report.summary()
        assert report.finished_at is not None
        assert report.duration_seconds >= 0

        data = report.to_dict()
        assert data["kind"] == "on_demand"
        assert data["provider"] == "fake"
        assert data["applied"] == ["R1"]
        assert data["error"] is None

    def test_error_counts(self, multi_region_provider):
        """스킵 에러를 카테고리별로 집계하고 재조회 대상 개수 계산"""
        multi_region_provider.errors[("list_instance_types", "cn-hangzhou")] = EndpointConnectionError(
            endpoint_url="https://ecs"
        )
        multi_region_provider.on_demand["cn-shanghai"]["ecs.g7.large"] = -1

        report = Reconciler(multi_region_provider, PriceStore()).refresh_on_demand()

        assert report.error_counts == {"network": 1, "invalid_data": 1}
        assert report.retryable_count == 1
        data = report.to_dict()
        assert data["error_counts"] == {"network": 1, "invalid_data": 1}
        assert data["retryable"] == 1

    def test_aborted_summary(self):
        report = RefreshReport(
            kind=RefreshKind.SPOT,
            provider="fake",
            error=TransientProviderError("fake", "discover_regions", error_code="Throttling"),
        )

        assert "Spot 갱신 중단" in report.summary()
        assert report.to_dict()["error"]["error_type"] == "TransientProviderError"
        assert report.duration_seconds == 0.0
