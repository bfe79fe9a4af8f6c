# ordercore/utils/retry.py
import logging

import redis
import requests
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ordercore.utils.logging import get_logger

logger = get_logger(__name__)

# catalog i redis maja retry, gateway platnosci nie (retry to decyzja wywolujacego)


def _policy(exceptions, attempts: int, base: float, cap: float):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base, min=base, max=cap),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def http_retry(attempts: int = 3):
    # tylko bledy transportu; 4xx/5xx od serwisu nie sa ponawiane
    return _policy((requests.ConnectionError, requests.Timeout), attempts, 0.3, 3)


def redis_retry(attempts: int = 3):
    return _policy(redis.RedisError, attempts, 0.2, 2)
