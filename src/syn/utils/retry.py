from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from syn.errors import APIError

T = TypeVar("T")

RETRYABLE_STATUS_CODES = (408, 429, 500, 502, 503, 504)


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, APIError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return False


@dataclass(frozen=True)
class RetryConfig:
    attempts: int = 3
    min_seconds: float = 1.0
    max_seconds: float = 30.0


def async_retry(cfg: RetryConfig) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    def _decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        return retry(
            reraise=True,
            retry=retry_if_exception(is_retryable_error),
            stop=stop_after_attempt(max(cfg.attempts, 1)),
            wait=wait_exponential_jitter(
                initial=cfg.min_seconds,
                max=cfg.max_seconds,
                jitter=1.0 + random.random(),
            ),
        )(fn)

    return _decorator
