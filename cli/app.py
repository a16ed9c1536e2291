"""
cli/app.py - 메인 CLI 엔트리포인트

Click 기반의 CLI 애플리케이션 진입점입니다.

명령어 구조:
    priceserver --version
    priceserver run --provider MOD:FACTORY [--seed PATH] [--initial-spot-update] [--max-workers N]
    priceserver export --provider MOD:FACTORY --output PATH [--seed PATH] [--with-spot]
    priceserver validate-seed PATH

    ``--provider`` 는 ProviderAdapter를 반환하는 팩토리 경로입니다
    (예: ``mycompany.adapters.alibaba:create_adapter``).

Usage:
    $ priceserver run --provider mycompany.adapters:AlibabaAdapter --seed builtin-data/price.json
    $ python -m cli.app validate-seed builtin-data/price.json
"""

from __future__ import annotations

import dataclasses
import logging
import threading

import click

from cli.console import print_error, print_success, setup_logging
from priceserver.client import PriceClient, create_price_client
from priceserver.config import RefreshConfig, get_version
from priceserver.exceptions import ConfigurationError, DataParsingError, PriceServerError
from priceserver.pricing.seed import load_seed
from priceserver.providers.base import load_provider

logger = logging.getLogger(__name__)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _build_config(
    seed_path: str | None,
    initial_spot_update: bool = False,
    max_workers: int | None = None,
) -> RefreshConfig:
    """환경변수 설정에 명령줄 옵션을 덮어쓴 RefreshConfig"""
    config = RefreshConfig.from_env()
    overrides: dict = {}
    if seed_path:
        overrides["seed_path"] = seed_path
    if initial_spot_update:
        overrides["initial_spot_update"] = True
    if max_workers is not None:
        overrides["max_workers"] = max_workers
    return dataclasses.replace(config, **overrides) if overrides else config


def _create_client(provider_path: str, config: RefreshConfig) -> PriceClient:
    """Provider 로드 후 클라이언트 생성 (실패 시 종료 코드 1)"""
    try:
        provider = load_provider(provider_path)
        return create_price_client(provider, config)
    except ConfigurationError as e:
        print_error(f"설정 오류: {e}")
        raise SystemExit(1) from e
    except DataParsingError as e:
        print_error(f"시드 로드 실패: {e}")
        raise SystemExit(1) from e
    except PriceServerError as e:
        print_error(f"가격 클라이언트 생성 실패: {e}")
        raise SystemExit(1) from e


@click.group()
@click.version_option(get_version(), prog_name="priceserver")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default=None,
    help="로그 레벨 (기본: LOG_LEVEL 환경변수 또는 INFO)",
)
def cli(log_level: str | None) -> None:
    """priceserver - 클라우드 컴퓨팅 가격 캐시"""
    setup_logging(log_level)


@cli.command("run")
@click.option("--provider", "provider_path", required=True, help="Provider 팩토리 경로 (module:factory)")
@click.option("--seed", "seed_path", type=click.Path(dir_okay=False), default=None, help="시드 스냅샷 JSON 경로")
@click.option("--initial-spot-update", is_flag=True, help="시작 직후 Spot 가격 1회 갱신")
@click.option("--max-workers", type=click.IntRange(min=1), default=None, help="병렬 조회 최대 워커 수")
def run_cmd(provider_path: str, seed_path: str | None, initial_spot_update: bool, max_workers: int | None) -> None:
    """주기적 가격 갱신 실행 (Ctrl+C로 종료)"""
    config = _build_config(seed_path, initial_spot_update, max_workers)
    client = _create_client(provider_path, config)

    stop_event = threading.Event()
    logger.info(f"{client!r} 갱신 루프 시작")
    try:
        client.run(stop_event)
    except KeyboardInterrupt:
        stop_event.set()
        logger.info("중지 요청 수신, 종료합니다")


@cli.command("export")
@click.option("--provider", "provider_path", required=True, help="Provider 팩토리 경로 (module:factory)")
@click.option("-o", "--output", "output", required=True, type=click.Path(dir_okay=False), help="출력 JSON 경로")
@click.option("--seed", "seed_path", type=click.Path(dir_okay=False), default=None, help="시드 스냅샷 JSON 경로")
@click.option("--with-spot", is_flag=True, help="Spot 가격도 갱신한 뒤 내보내기")
def export_cmd(provider_path: str, output: str, seed_path: str | None, with_spot: bool) -> None:
    """최신 가격을 조회하여 시드 스냅샷으로 저장"""
    config = _build_config(seed_path)
    client = _create_client(provider_path, config)

    refreshes = [client.refresh_on_demand_price]
    if with_spot:
        refreshes.append(client.refresh_spot_price)

    for refresh in refreshes:
        try:
            report = refresh()
        except ConfigurationError as e:
            print_error(f"설정 오류: {e}")
            raise SystemExit(1) from e
        if report.aborted:
            print_error(report.summary())
            raise SystemExit(1)

    path = client.export_seed(output)
    print_success(f"내보내기 완료: {path} (리전 {len(client.store)}개)")


@cli.command("validate-seed")
@click.argument("path", type=click.Path(dir_okay=False))
def validate_seed_cmd(path: str) -> None:
    """시드 스냅샷 형식 검증"""
    try:
        store = load_seed(path)
    except DataParsingError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    snapshot = store.snapshot_all()
    instance_types = sum(len(record.instance_type_prices) for record in snapshot.values())
    print_success(f"유효한 시드: 리전 {len(snapshot)}개, 인스턴스 타입 {instance_types}개")


if __name__ == "__main__":
    cli()
