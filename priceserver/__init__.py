# priceserver/__init__.py
"""
priceserver - 클라우드 컴퓨팅 가격 캐시

리전/인스턴스 타입별 On-Demand 및 Spot 가격을 메모리에 캐시하고,
Provider 어댑터를 통해 주기적으로 갱신합니다.

아키텍처:
    priceserver/
    ├── parallel/       # 제한된 워커 풀 병렬 실행기
    ├── pricing/        # 가격 저장소, 시드, 갱신 엔진, 스케줄러
    ├── providers/      # Provider 어댑터 인터페이스
    ├── client.py       # PriceClient (조회/갱신/내보내기)
    ├── config.py       # 중앙 설정 관리
    └── exceptions.py   # 통합 예외 계층

Usage:
    from priceserver import create_price_client
    from priceserver.config import RefreshConfig

    client = create_price_client(provider, RefreshConfig.from_env())
    client.start()
    price = client.get_instance_type_price("cn-hangzhou", "ecs.g7.large")
"""

from priceserver import config, exceptions, parallel, pricing, providers
from priceserver.client import PriceClient, create_price_client

__all__: list[str] = [
    # 서브패키지
    "parallel",
    "pricing",
    "providers",
    # 모듈
    "config",
    "exceptions",
    # 클라이언트
    "PriceClient",
    "create_price_client",
]
