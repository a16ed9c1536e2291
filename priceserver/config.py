"""
priceserver/config.py - 중앙 설정 모듈

기본값은 불변 ``Settings`` 데이터클래스로 관리하고,
실행 시 조정이 필요한 값은 ``PRICESERVER_*`` 환경변수로 덮어씁니다.

Usage:
    from priceserver.config import RefreshConfig, settings

    config = RefreshConfig.from_env()
    print(config.spot_interval, settings.ON_DEMAND_INTERVAL_SECONDS)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache


def default_max_workers() -> int:
    """가용 CPU 수 기반 기본 워커 수 (ThreadPoolExecutor 기본값과 동일한 공식)"""
    return min(32, (os.cpu_count() or 1) + 4)


@dataclass(frozen=True)
class Settings:
    """전역 기본 설정 (불변)"""

    # 갱신 주기 (초)
    ON_DEMAND_INTERVAL_SECONDS: int = 7 * 24 * 60 * 60  # 1주
    SPOT_INTERVAL_SECONDS: int = 30 * 60  # 30분

    # 병렬 실행
    MAX_WORKERS_LIMIT: int = 100

    # 시드/내보내기
    SEED_INDENT: int = 3
    EXPORT_LOCK_TIMEOUT: int = 10

    # 스케줄러 종료 대기 (초)
    SCHEDULER_JOIN_TIMEOUT: float = 30.0


settings = Settings()


# =============================================================================
# 환경변수 헬퍼
# =============================================================================

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def get_env_bool(name: str, default: bool = False) -> bool:
    """환경변수를 bool로 변환 (알 수 없는 값이면 기본값)"""
    value = os.environ.get(name)
    if value is None:
        return default

    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


def get_env_int(name: str, default: int) -> int:
    """환경변수를 int로 변환 (변환 실패 시 기본값)"""
    value = os.environ.get(name)
    if value is None:
        return default

    try:
        return int(value)
    except ValueError:
        return default


def get_env_list(name: str) -> list[str]:
    """쉼표로 구분된 환경변수를 리스트로 변환 (빈 항목 제외)"""
    value = os.environ.get(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


# =============================================================================
# 로깅 설정
# =============================================================================


@dataclass
class LogConfig:
    """로깅 설정

    Attributes:
        level: 로그 레벨 이름
        format: 로그 포맷 문자열
        date_format: 시간 포맷
    """

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_env(cls) -> LogConfig:
        """LOG_LEVEL / LOG_FORMAT 환경변수에서 로드"""
        default = cls()
        return cls(
            level=os.environ.get("LOG_LEVEL", default.level).upper(),
            format=os.environ.get("LOG_FORMAT", default.format),
            date_format=default.date_format,
        )


# =============================================================================
# 갱신 설정
# =============================================================================


@dataclass
class RefreshConfig:
    """가격 갱신 엔진 설정

    Attributes:
        on_demand_interval: On-Demand 갱신 주기 (초)
        spot_interval: Spot 갱신 주기 (초)
        max_workers: 병렬 조회 최대 워커 수
        initial_spot_update: 시작 직후 Spot 가격을 한 번 갱신할지 여부
        ignored_regions: 갱신 대상에서 제외할 리전
        seed_path: 시드 스냅샷 JSON 경로 (None이면 빈 저장소로 시작)
    """

    on_demand_interval: float = settings.ON_DEMAND_INTERVAL_SECONDS
    spot_interval: float = settings.SPOT_INTERVAL_SECONDS
    max_workers: int = field(default_factory=default_max_workers)
    initial_spot_update: bool = False
    ignored_regions: frozenset[str] = frozenset()
    seed_path: str | None = None

    def __post_init__(self) -> None:
        if self.on_demand_interval <= 0:
            raise ValueError(f"on_demand_interval must be > 0, got {self.on_demand_interval}")
        if self.spot_interval <= 0:
            raise ValueError(f"spot_interval must be > 0, got {self.spot_interval}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        self.ignored_regions = frozenset(self.ignored_regions)

    @classmethod
    def from_env(cls) -> RefreshConfig:
        """PRICESERVER_* 환경변수에서 설정 로드"""
        return cls(
            on_demand_interval=get_env_int("PRICESERVER_ON_DEMAND_INTERVAL", settings.ON_DEMAND_INTERVAL_SECONDS),
            spot_interval=get_env_int("PRICESERVER_SPOT_INTERVAL", settings.SPOT_INTERVAL_SECONDS),
            max_workers=get_env_int("PRICESERVER_MAX_WORKERS", default_max_workers()),
            initial_spot_update=get_env_bool("PRICESERVER_INITIAL_SPOT_UPDATE"),
            ignored_regions=frozenset(get_env_list("PRICESERVER_IGNORED_REGIONS")),
            seed_path=os.environ.get("PRICESERVER_SEED_PATH") or None,
        )


@lru_cache(maxsize=1)
def get_version() -> str:
    """설치된 패키지 메타데이터에서 버전 조회"""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("priceserver")
    except PackageNotFoundError:
        return "0.0.0"
