"""
priceserver/pricing/types.py - 가격 데이터 모델

리전 > 인스턴스 타입 > 가격 구조의 데이터 클래스와
시드 스냅샷/내보내기 JSON 스키마 변환을 정의합니다.

JSON 스키마::

    {
      "<region>": {
        "instanceTypePrices": {
          "<instanceType>": {
            "arch": "amd64", "vcpu": 2.0, "memory": 8.0, "gpu": 0.0,
            "zones": ["cn-hangzhou-i"],
            "onDemandPricePerHour": 0.096,
            "spotPricePerHour": {"cn-hangzhou-i": 0.03}
          }
        }
      }
    }

``onDemandPricePerHour`` 와 ``spotPricePerHour`` 는 각각 독립적으로 갱신되며,
첫 갱신 전까지는 없을 수 있습니다 (``None``).
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from priceserver.exceptions import DataParsingError

# JSON 키
KEY_INSTANCE_TYPE_PRICES = "instanceTypePrices"
KEY_ARCH = "arch"
KEY_VCPU = "vcpu"
KEY_MEMORY = "memory"
KEY_GPU = "gpu"
KEY_ZONES = "zones"
KEY_ON_DEMAND = "onDemandPricePerHour"
KEY_SPOT = "spotPricePerHour"

_INSTANCE_TYPE_KEYS = {KEY_ARCH, KEY_VCPU, KEY_MEMORY, KEY_GPU, KEY_ZONES, KEY_ON_DEMAND, KEY_SPOT}


# =============================================================================
# 검증 헬퍼
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_rate(value: Any, source: str, path: str) -> float:
    """시간당 가격 검증 (유한한 0 이상의 숫자)

    Args:
        value: 검증할 값
        source: 데이터 출처 (에러 메시지용)
        path: 데이터 내 위치 (에러 메시지용)

    Returns:
        float로 변환된 가격

    Raises:
        DataParsingError: 숫자가 아니거나 음수/무한대인 경우
    """
    if not _is_number(value):
        raise DataParsingError(source, f"가격은 숫자여야 함 (실제: {type(value).__name__})", path)
    rate = float(value)
    if not math.isfinite(rate) or rate < 0:
        raise DataParsingError(source, f"가격은 0 이상의 유한한 값이어야 함 (실제: {value})", path)
    return rate


def validate_spot_prices(value: Any, source: str, path: str) -> dict[str, float]:
    """존별 Spot 가격 매핑 검증

    Returns:
        {zone: rate} 딕셔너리 (새 객체)
    """
    if not isinstance(value, Mapping):
        raise DataParsingError(source, "Spot 가격은 {zone: price} 객체여야 함", path)
    prices: dict[str, float] = {}
    for zone, rate in value.items():
        if not isinstance(zone, str) or not zone:
            raise DataParsingError(source, f"잘못된 존 이름: {zone!r}", path)
        prices[zone] = validate_rate(rate, source, f"{path}.{zone}")
    return prices


def _validate_shape_number(value: Any, source: str, path: str) -> float:
    if not _is_number(value) or not math.isfinite(float(value)) or value < 0:
        raise DataParsingError(source, f"0 이상의 숫자여야 함 (실제: {value!r})", path)
    return float(value)


def _validate_zones(value: Any, source: str, path: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(z, str) for z in value):
        raise DataParsingError(source, "zones는 문자열 리스트여야 함", path)
    return list(value)


# =============================================================================
# 데이터 클래스
# =============================================================================


@dataclass(frozen=True)
class InstanceTypeShape:
    """인스턴스 타입의 정적 사양 (Provider 목록 조회 결과)

    Attributes:
        arch: CPU 아키텍처 ("amd64", "arm64")
        vcpu: vCPU 수
        memory: 메모리 (GiB)
        gpu: GPU 수
        zones: 해당 타입이 제공되는 존 목록
    """

    arch: str
    vcpu: float
    memory: float
    gpu: float = 0.0
    zones: tuple[str, ...] = ()


@dataclass
class InstanceTypePrice:
    """인스턴스 타입별 가격 레코드

    Attributes:
        arch: CPU 아키텍처
        vcpu: vCPU 수
        memory: 메모리 (GiB)
        gpu: GPU 수
        zones: 제공 존 목록
        on_demand_price_per_hour: On-Demand 시간당 가격 (미조회 시 None)
        spot_price_per_hour: 존별 Spot 시간당 가격 (미조회 시 None)
    """

    arch: str = ""
    vcpu: float = 0.0
    memory: float = 0.0
    gpu: float = 0.0
    zones: list[str] = field(default_factory=list)
    on_demand_price_per_hour: float | None = None
    spot_price_per_hour: dict[str, float] | None = None

    @classmethod
    def from_shape(
        cls,
        shape: InstanceTypeShape,
        on_demand_price_per_hour: float | None = None,
        spot_price_per_hour: Mapping[str, float] | None = None,
    ) -> InstanceTypePrice:
        """정적 사양과 가격으로 레코드 생성"""
        return cls(
            arch=shape.arch,
            vcpu=float(shape.vcpu),
            memory=float(shape.memory),
            gpu=float(shape.gpu),
            zones=list(shape.zones),
            on_demand_price_per_hour=on_demand_price_per_hour,
            spot_price_per_hour=dict(spot_price_per_hour) if spot_price_per_hour is not None else None,
        )

    def copy(self) -> InstanceTypePrice:
        """내부 리스트/딕셔너리까지 복사한 깊은 복사본"""
        return InstanceTypePrice(
            arch=self.arch,
            vcpu=self.vcpu,
            memory=self.memory,
            gpu=self.gpu,
            zones=list(self.zones),
            on_demand_price_per_hour=self.on_demand_price_per_hour,
            spot_price_per_hour=dict(self.spot_price_per_hour) if self.spot_price_per_hour is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            KEY_ARCH: self.arch,
            KEY_VCPU: self.vcpu,
            KEY_MEMORY: self.memory,
            KEY_GPU: self.gpu,
            KEY_ZONES: list(self.zones),
        }
        if self.on_demand_price_per_hour is not None:
            data[KEY_ON_DEMAND] = self.on_demand_price_per_hour
        if self.spot_price_per_hour is not None:
            data[KEY_SPOT] = dict(self.spot_price_per_hour)
        return data

    @classmethod
    def from_dict(cls, data: Any, source: str = "seed", path: str = "") -> InstanceTypePrice:
        """JSON 객체에서 레코드 생성 (스키마 검증 포함)

        Raises:
            DataParsingError: 스키마가 맞지 않는 경우
        """
        if not isinstance(data, Mapping):
            raise DataParsingError(source, "인스턴스 타입 가격은 객체여야 함", path)

        unknown = set(data) - _INSTANCE_TYPE_KEYS
        if unknown:
            raise DataParsingError(source, f"알 수 없는 필드: {', '.join(sorted(unknown))}", path)

        arch = data.get(KEY_ARCH, "")
        if not isinstance(arch, str):
            raise DataParsingError(source, "arch는 문자열이어야 함", f"{path}.{KEY_ARCH}")

        on_demand = data.get(KEY_ON_DEMAND)
        spot = data.get(KEY_SPOT)

        return cls(
            arch=arch,
            vcpu=_validate_shape_number(data.get(KEY_VCPU, 0), source, f"{path}.{KEY_VCPU}"),
            memory=_validate_shape_number(data.get(KEY_MEMORY, 0), source, f"{path}.{KEY_MEMORY}"),
            gpu=_validate_shape_number(data.get(KEY_GPU, 0), source, f"{path}.{KEY_GPU}"),
            zones=_validate_zones(data.get(KEY_ZONES, []), source, f"{path}.{KEY_ZONES}"),
            on_demand_price_per_hour=(
                validate_rate(on_demand, source, f"{path}.{KEY_ON_DEMAND}") if on_demand is not None else None
            ),
            spot_price_per_hour=(validate_spot_prices(spot, source, f"{path}.{KEY_SPOT}") if spot is not None else None),
        )


@dataclass
class RegionalInstancePrice:
    """리전 하나의 인스턴스 타입별 가격

    Attributes:
        instance_type_prices: {instance_type: InstanceTypePrice}
    """

    instance_type_prices: dict[str, InstanceTypePrice] = field(default_factory=dict)

    def copy(self) -> RegionalInstancePrice:
        """모든 레코드를 복사한 깊은 복사본"""
        return RegionalInstancePrice(
            instance_type_prices={name: price.copy() for name, price in self.instance_type_prices.items()}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            KEY_INSTANCE_TYPE_PRICES: {name: price.to_dict() for name, price in self.instance_type_prices.items()}
        }

    @classmethod
    def from_dict(cls, data: Any, source: str = "seed", path: str = "") -> RegionalInstancePrice:
        """JSON 객체에서 리전 레코드 생성

        Raises:
            DataParsingError: 스키마가 맞지 않는 경우
        """
        if not isinstance(data, Mapping):
            raise DataParsingError(source, "리전 가격은 객체여야 함", path)

        unknown = set(data) - {KEY_INSTANCE_TYPE_PRICES}
        if unknown:
            raise DataParsingError(source, f"알 수 없는 필드: {', '.join(sorted(unknown))}", path)

        prices = data.get(KEY_INSTANCE_TYPE_PRICES)
        if prices is None:
            prices = {}
        if not isinstance(prices, Mapping):
            raise DataParsingError(source, f"{KEY_INSTANCE_TYPE_PRICES}는 객체여야 함", path)

        return cls(
            instance_type_prices={
                name: InstanceTypePrice.from_dict(item, source, f"{path}.{KEY_INSTANCE_TYPE_PRICES}.{name}")
                for name, item in prices.items()
            }
        )


def regions_from_dict(data: Any, source: str = "seed") -> dict[str, RegionalInstancePrice]:
    """``{region: RegionalInstancePrice}`` JSON 전체 변환

    Raises:
        DataParsingError: 최상위가 객체가 아니거나 하위 스키마가 맞지 않는 경우
    """
    if not isinstance(data, Mapping):
        raise DataParsingError(source, "최상위는 {region: ...} 객체여야 함")

    regions: dict[str, RegionalInstancePrice] = {}
    for region, item in data.items():
        if not isinstance(region, str) or not region:
            raise DataParsingError(source, f"잘못된 리전 이름: {region!r}")
        regions[region] = RegionalInstancePrice.from_dict(item, source, region)
    return regions
