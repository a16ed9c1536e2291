"""
priceserver/pricing/store.py - 동시성 안전 가격 저장소 (PriceStore)

리전별 가격 레코드를 메모리에 보관하며, 하나의 읽기/쓰기 락으로 보호한다.

불변 조건:
    - 외부로 반환되는 모든 값은 깊은 복사본이다. 호출자는 내부 상태를
      참조할 수 없으므로 백그라운드 갱신이 레코드를 교체해도
      읽는 쪽에서 부분적으로 변경된 레코드를 볼 수 없다.
    - 모든 쓰기는 쓰기 락으로 직렬화된다 (동일 리전/인스턴스 타입은 마지막 쓰기가 이긴다).
    - 읽기는 복사 후 즉시 락을 해제한다.

사용법:
    from priceserver.pricing.store import PriceStore

    store = PriceStore()
    store.replace_region("cn-hangzhou", RegionalInstancePrice(...))
    price = store.get_instance_type("cn-hangzhou", "ecs.g7.large")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .lock import ReadWriteLock
from .types import InstanceTypePrice, RegionalInstancePrice, regions_from_dict

logger = logging.getLogger(__name__)


class PriceStore:
    """리전별 가격 레코드 캐시 (thread-safe).

    Attributes:
        _data: {region: RegionalInstancePrice} (외부 노출 금지)
        _lock: 읽기/쓰기 락
    """

    def __init__(self, data: Mapping[str, RegionalInstancePrice] | None = None):
        """
        Args:
            data: 초기 데이터 (복사하여 보관)
        """
        self._lock = ReadWriteLock()
        self._data: dict[str, RegionalInstancePrice] = {
            region: record.copy() for region, record in (data or {}).items()
        }

    @classmethod
    def from_dict(cls, data: Any, source: str = "seed") -> PriceStore:
        """시드 스키마 JSON 객체로부터 저장소 생성

        Raises:
            DataParsingError: 스키마가 맞지 않는 경우
        """
        return cls(regions_from_dict(data, source))

    # =========================================================================
    # 쓰기
    # =========================================================================

    def replace_region(self, region: str, record: RegionalInstancePrice) -> None:
        """리전 레코드 전체를 원자적으로 교체한다.

        Args:
            region: 리전 ID
            record: 새 레코드 (복사본이 저장됨)
        """
        new_record = record.copy()
        with self._lock.write():
            self._data[region] = new_record

    def swap_region(
        self,
        region: str,
        builder: Callable[[RegionalInstancePrice | None], RegionalInstancePrice],
    ) -> None:
        """기존 레코드를 참고하여 새 레코드를 만들고 원자적으로 교체한다.

        ``builder`` 는 쓰기 락 안에서 기존 레코드의 복사본(없으면 ``None``)을 받아
        새 레코드를 반환한다. 읽기와 교체 사이에 다른 쓰기가 끼어들 수 없다.

        Args:
            region: 리전 ID
            builder: 기존 레코드 -> 새 레코드 함수 (메모리 내 계산만 수행해야 함)
        """
        with self._lock.write():
            previous = self._data.get(region)
            new_record = builder(previous.copy() if previous is not None else None)
            self._data[region] = new_record.copy()

    def merge_instance_type(
        self,
        region: str,
        instance_type: str,
        updater: Callable[[InstanceTypePrice], None],
        factory: Callable[[], InstanceTypePrice] | None = None,
    ) -> None:
        """인스턴스 타입 레코드 하나를 제자리에서 갱신한다.

        리전이나 레코드가 없으면 빈 레코드(또는 ``factory`` 결과)를 만든 뒤
        ``updater`` 를 적용한다. ``updater`` 가 예외를 던지면 변경은 반영되지 않는다.

        Args:
            region: 리전 ID
            instance_type: 인스턴스 타입 ID
            updater: 레코드를 제자리에서 수정하는 함수
            factory: 레코드가 없을 때 초기 레코드를 만드는 함수
        """
        with self._lock.write():
            regional = self._data.get(region)
            current = regional.instance_type_prices.get(instance_type) if regional is not None else None

            working = current.copy() if current is not None else (factory() if factory else InstanceTypePrice())
            updater(working)

            if regional is None:
                regional = RegionalInstancePrice()
                self._data[region] = regional
            regional.instance_type_prices[instance_type] = working

    # =========================================================================
    # 읽기 (항상 깊은 복사본 반환)
    # =========================================================================

    def snapshot_all(self) -> dict[str, RegionalInstancePrice]:
        """모든 리전 레코드의 깊은 복사본"""
        with self._lock.read():
            return {region: record.copy() for region, record in self._data.items()}

    def snapshot_region(self, region: str) -> RegionalInstancePrice | None:
        """리전 레코드의 깊은 복사본 (없으면 None)"""
        with self._lock.read():
            record = self._data.get(region)
            return record.copy() if record is not None else None

    def get_instance_type(self, region: str, instance_type: str) -> InstanceTypePrice | None:
        """인스턴스 타입 레코드의 깊은 복사본 (없으면 None)"""
        with self._lock.read():
            record = self._data.get(region)
            if record is None:
                return None
            price = record.instance_type_prices.get(instance_type)
            return price.copy() if price is not None else None

    def regions(self) -> list[str]:
        """저장된 리전 ID 목록 (정렬됨)"""
        with self._lock.read():
            return sorted(self._data)

    def to_dict(self) -> dict[str, Any]:
        """시드 스키마와 동일한 직렬화 가능 딕셔너리"""
        with self._lock.read():
            return {region: record.to_dict() for region, record in self._data.items()}

    def __contains__(self, region: object) -> bool:
        with self._lock.read():
            return region in self._data

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._data)
