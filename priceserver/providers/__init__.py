"""
priceserver/providers - 클라우드 Provider 어댑터 경계

구체적인 SDK 어댑터는 이 패키지 밖에서 구현하고
``load_provider("module:factory")`` 로 연결합니다.
"""

from .base import ProviderAdapter, load_provider

__all__ = ["ProviderAdapter", "load_provider"]
