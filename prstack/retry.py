#!/usr/bin/env python3

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping, Optional

from prstack.github import RateLimitError

# Defaults; RealGitHubEndpoint lets you override both
MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0


@dataclass
class Response:
    """
    What we keep of an HTTP response once the body has been read.  The
    aiohttp response object is unusable after its context manager exits,
    so the retry loop works with these instead.
    """

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    text: str = ""


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    # Header names are case insensitive
    for k, v in headers.items():
        if k.lower() == name:
            return v
    return None


def _int_header(headers: Mapping[str, str], name: str) -> Optional[int]:
    v = _header(headers, name)
    if v is None:
        return None
    try:
        return int(v)
    except ValueError:
        return None


def is_rate_limited(resp: Response) -> bool:
    if resp.status == 429:
        return True
    # GitHub sometimes reports an exhausted primary quota as a 403
    if resp.status == 403:
        return _header(resp.headers, "x-ratelimit-remaining") == "0"
    return False


def parse_rate_limit(resp: Response) -> RateLimitError:
    reset_time = None
    reset = _int_header(resp.headers, "x-ratelimit-reset")
    if reset is not None:
        reset_time = datetime.datetime.fromtimestamp(reset, tz=datetime.timezone.utc)
    return RateLimitError(
        reset_time=reset_time,
        limit=_int_header(resp.headers, "x-ratelimit-limit"),
        remaining=_int_header(resp.headers, "x-ratelimit-remaining"),
    )


async def send_with_retry(
    send: Callable[[], Awaitable[Response]],
    *,
    max_attempts: int = MAX_ATTEMPTS,
    base_delay: float = BASE_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Response:
    """
    Call send() until it returns something that isn't a rate limit
    response, waiting base_delay * 2**attempt seconds in between.

    Args:
        send: builds and performs the request; called fresh each attempt
        max_attempts: total number of calls to make before giving up
        base_delay: delay after the first rate limited attempt, in seconds
        sleep: how to wait (tests pass a recorder here)

    Returns: the first response that was not rate limited

    Raises:
        RateLimitError: every attempt was rate limited; carries the
            quota information of the last response
    """
    last: Optional[RateLimitError] = None
    for attempt in range(max_attempts):
        resp = await send()
        if not is_rate_limited(resp):
            return resp

        last = parse_rate_limit(resp)
        if attempt < max_attempts - 1:
            delay = base_delay * 2 ** attempt
            logging.warning(
                "Rate limit exceeded (attempt {}/{}). Sleeping for {} seconds.".format(
                    attempt + 1, max_attempts, delay
                )
            )
            await sleep(delay)

    if last is None:
        last = RateLimitError()
    raise last
