"""
priceserver/pricing/lock.py - 읽기/쓰기 락

여러 읽기 스레드의 동시 진입을 허용하고, 쓰기는 단독으로 수행합니다.
대기 중인 쓰기가 있으면 새 읽기를 막아 쓰기 기아(starvation)를 방지합니다.

Example:
    lock = ReadWriteLock()

    with lock.read():
        snapshot = copy_of(data)

    with lock.write():
        data[region] = record
"""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager


class ReadWriteLock:
    """쓰기 우선 읽기/쓰기 락 (재진입 불가)"""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            except BaseException:
                # 대기 중단 시 막혀 있던 읽기 스레드를 깨움
                self._writers_waiting -= 1
                self._cond.notify_all()
                raise
            self._writers_waiting -= 1
            self._writer_active = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer_active:
                raise RuntimeError("release_write() called without matching acquire_write()")
            self._writer_active = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        """읽기 락 컨텍스트 매니저"""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        """쓰기 락 컨텍스트 매니저"""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
