"""
priceserver/providers/base.py - 클라우드 Provider 어댑터 인터페이스

갱신 엔진이 실제 클라우드 Provider에 접근하는 유일한 경계이다.
SDK 인증과 API 호출은 각 어댑터 구현이 담당하며, 호출 타임아웃도
어댑터의 책임이다.

각 호출은 독립적으로 실패할 수 있고, 갱신 엔진은 실패를
"이 단위는 스킵하고 이전 캐시 값을 유지"로 처리한다.
``discover_regions`` 가 ``ConfigurationError`` 를 던지면 갱신 패스 전체가 중단된다.

Example:
    class MyCloudAdapter(ProviderAdapter):
        name = "mycloud"

        def discover_regions(self):
            return ["region-1", "region-2"]

        # ... 나머지 메서드 구현

    provider = load_provider("mypackage.adapters:MyCloudAdapter")
"""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from priceserver.exceptions import ConfigurationError
from priceserver.pricing.types import InstanceTypeShape

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Provider 어댑터 추상 기본 클래스

    Attributes:
        name: Provider 식별자 (로그/리포트용)
    """

    name: str = "provider"

    @abstractmethod
    def discover_regions(self) -> Iterable[str]:
        """사용 가능한 리전 ID 목록을 반환합니다.

        관리상 제외된 리전(예: 서비스 종료된 리전)은 포함하지 않습니다.

        Raises:
            ConfigurationError: 사용 가능한 자격증명이 없는 경우
        """
        pass

    @abstractmethod
    def list_instance_types(self, region: str) -> Mapping[str, InstanceTypeShape]:
        """리전에서 구매 가능한 인스턴스 타입과 정적 사양을 반환합니다.

        Args:
            region: 리전 ID

        Returns:
            {instance_type: InstanceTypeShape}
        """
        pass

    @abstractmethod
    def fetch_on_demand_prices(self) -> Mapping[str, Mapping[str, float]]:
        """전체 리전의 On-Demand 가격 스냅샷을 한 번에 조회합니다.

        Returns:
            {region: {instance_type: 시간당 가격}}
        """
        pass

    @abstractmethod
    def fetch_spot_price(self, region: str, instance_type: str) -> Mapping[str, float] | None:
        """인스턴스 타입의 존별 Spot 가격을 조회합니다.

        Args:
            region: 리전 ID
            instance_type: 인스턴스 타입 ID

        Returns:
            {zone: 시간당 가격}, Spot 가격이 없으면 None (빈 매핑도 가격 없음으로 처리)
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def load_provider(spec: str) -> ProviderAdapter:
    """``"package.module:factory"`` 형식의 경로에서 어댑터를 생성합니다.

    ``factory`` 는 ProviderAdapter 하위 클래스 또는 인자 없이 호출 가능한
    팩토리 함수여야 합니다.

    Args:
        spec: 모듈 경로와 팩토리 이름

    Returns:
        ProviderAdapter 인스턴스

    Raises:
        ConfigurationError: 경로 형식 오류, 임포트 실패, 잘못된 반환 타입
    """
    module_name, sep, attr_name = spec.partition(":")
    if not sep or not module_name or not attr_name:
        raise ConfigurationError(f"Provider 경로 형식 오류: {spec!r} (예: 'package.module:factory')", "provider")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Provider 모듈 임포트 실패: {module_name}", "provider", cause=e) from e

    factory = getattr(module, attr_name, None)
    if factory is None or not callable(factory):
        raise ConfigurationError(f"Provider 팩토리 없음: {spec}", "provider")

    provider = factory()
    if not isinstance(provider, ProviderAdapter):
        raise ConfigurationError(
            f"Provider 팩토리가 ProviderAdapter가 아닌 값을 반환함: {type(provider).__name__}",
            "provider",
        )

    logger.debug(f"Provider 로드: {spec} -> {provider!r}")
    return provider
