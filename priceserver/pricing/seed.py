"""
priceserver/pricing/seed.py - 시드 스냅샷 로드 및 내보내기

프로세스 시작 시 번들된 가격 스냅샷으로 저장소를 채워, 첫 실시간 갱신이
끝나기 전에도 비어 있지 않은 응답을 제공한다. 스냅샷 스키마는 저장소의
직렬화 스키마와 동일하며, 오프라인 재생성 도구는 ``export_seed`` 로
실행 중인 저장소를 같은 형식으로 저장한다.

에러 처리:
    - 시드 파일이 없거나 JSON/스키마가 잘못되면 ``DataParsingError`` (시작 불가)

동시성 보호:
    - 쓰기: ``filelock`` 으로 동시 내보내기를 방지하고, 임시 파일에 쓴 뒤
      ``os.replace`` 로 교체하여 읽는 쪽이 잘린 파일을 보지 않게 한다.

사용법:
    from priceserver.pricing.seed import export_seed, load_seed

    store = load_seed("builtin-data/alibabacloud_price.json")
    export_seed(store, "builtin-data/alibabacloud_price.json")
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from priceserver.config import settings
from priceserver.exceptions import DataParsingError

from .store import PriceStore

logger = logging.getLogger(__name__)


def loads_seed(text: str, source: str = "seed") -> PriceStore:
    """JSON 문자열에서 저장소 생성

    Args:
        text: 시드 JSON 문자열
        source: 에러 메시지에 표시할 출처

    Returns:
        시드 데이터가 채워진 PriceStore

    Raises:
        DataParsingError: JSON 또는 스키마 오류
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DataParsingError(source, f"JSON 파싱 실패 (line {e.lineno}, col {e.colno})", cause=e) from e

    return PriceStore.from_dict(data, source)


def load_seed(path: str | os.PathLike[str]) -> PriceStore:
    """시드 파일에서 저장소 생성

    Args:
        path: 시드 JSON 경로

    Returns:
        시드 데이터가 채워진 PriceStore

    Raises:
        DataParsingError: 파일을 읽을 수 없거나 형식이 잘못된 경우
    """
    seed_path = Path(path)
    try:
        text = seed_path.read_text(encoding="utf-8")
    except OSError as e:
        raise DataParsingError(str(seed_path), "시드 파일을 읽을 수 없음", cause=e) from e

    store = loads_seed(text, str(seed_path))
    logger.info(f"시드 로드 완료: {seed_path} ({len(store)}개 리전)")
    return store


def dumps_seed(data: PriceStore | dict[str, Any]) -> str:
    """시드 스키마 JSON 문자열로 직렬화

    키를 정렬하고 들여쓰기를 고정하여, 같은 데이터는 항상 같은 바이트열이 된다.
    """
    payload = data.to_dict() if isinstance(data, PriceStore) else data
    return json.dumps(payload, indent=settings.SEED_INDENT, sort_keys=True, ensure_ascii=False) + "\n"


def export_seed(store: PriceStore, path: str | os.PathLike[str]) -> Path:
    """저장소를 시드 파일로 내보낸다.

    Args:
        store: 내보낼 저장소
        path: 출력 경로

    Returns:
        저장된 파일 경로

    Raises:
        Timeout: 파일 락 획득 실패
        OSError: 파일 쓰기 실패
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    lock_path = output.with_name(output.name + ".lock")
    tmp_path = output.with_name(output.name + ".tmp")

    text = dumps_seed(store)

    try:
        with FileLock(str(lock_path), timeout=settings.EXPORT_LOCK_TIMEOUT):
            tmp_path.write_text(text, encoding="utf-8")
            os.replace(tmp_path, output)
    except Timeout:
        logger.error(f"시드 내보내기 타임아웃: {output} (락 획득 실패)")
        raise

    logger.info(f"시드 내보내기 완료: {output} ({len(store)}개 리전)")
    return output
