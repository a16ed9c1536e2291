"""
cli/console.py - Rich 콘솔 및 로깅 설정

일관된 콘솔 출력과 RichHandler 기반 로깅을 제공합니다.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from priceserver.config import LogConfig

# botocore 노이즈 로그 제한
logging.getLogger("botocore.httpchecksum").setLevel(logging.WARNING)
logging.getLogger("botocore.credentials").setLevel(logging.WARNING)
logging.getLogger("botocore.loaders").setLevel(logging.WARNING)
logging.getLogger("botocore.session").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)

# 전역 콘솔 인스턴스 (로그는 stderr, 결과 출력은 stdout)
console = Console(highlight=True, soft_wrap=True)
err_console = Console(stderr=True)

# 상태 심볼
SYMBOL_SUCCESS = "✓"
SYMBOL_ERROR = "✗"


def setup_logging(level: str | None = None) -> None:
    """루트 logger에 RichHandler 설치

    Args:
        level: 로그 레벨 이름 (None이면 LOG_LEVEL 환경변수 또는 INFO)
    """
    log_config = LogConfig.from_env()
    log_level = (level or log_config.level).upper()

    # 포맷에 시간/레벨이 있으면 RichHandler 컬럼과 중복되지 않도록 숨김
    handler = RichHandler(
        console=err_console,
        rich_tracebacks=True,
        show_path=False,
        show_time="%(asctime)s" not in log_config.format,
        show_level="%(levelname)s" not in log_config.format,
    )
    handler.setFormatter(logging.Formatter(log_config.format, datefmt=log_config.date_format))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)


def print_success(message: str) -> None:
    """성공 메시지 출력 (초록색 체크마크)"""
    console.print(f"[green]{SYMBOL_SUCCESS} {message}[/green]")


def print_error(message: str) -> None:
    """에러 메시지 출력 (빨간색 X, stderr)"""
    err_console.print(f"[red]{SYMBOL_ERROR} {message}[/red]")
