#!/usr/bin/env python3

import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

import prstack.github
import prstack.retry

# Reads are cheap to repeat; mutations get more time since giving up
# halfway leaves us not knowing whether GitHub applied them
READ_TIMEOUT_SECONDS = 10
WRITE_TIMEOUT_SECONDS = 30


class RealGitHubEndpoint(prstack.github.GitHubEndpoint):
    """
    A class representing a GitHub endpoint we can send REST queries to.
    """

    # The string OAuth token to authenticate with
    oauth_token: str

    # Host of the GitHub instance, e.g. github.com or github.example.com
    github_url: str

    # Explicit override for the REST endpoint, e.g. a local mock server
    # in tests.  When None it is derived from github_url.
    api_base: Optional[str]

    # The URL of a proxy to use for these connections
    proxy: Optional[str]

    # Retry policy for rate limited requests
    max_attempts: int
    base_delay: float

    def __init__(
        self,
        oauth_token: str,
        github_url: str = "github.com",
        *,
        api_base: Optional[str] = None,
        proxy: Optional[str] = None,
        max_attempts: int = prstack.retry.MAX_ATTEMPTS,
        base_delay: float = prstack.retry.BASE_DELAY_SECONDS,
    ):
        self.oauth_token = oauth_token
        self.github_url = github_url
        self.api_base = api_base
        self.proxy = proxy
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    # The base URL of the REST endpoint to connect to (all REST requests
    # will be subpaths of this URL)
    @property
    def rest_endpoint(self) -> str:
        if self.api_base:
            return self.api_base.rstrip("/")
        elif self.github_url == "github.com":
            return "https://api.{}".format(self.github_url)
        else:
            return "https://{}/api/v3".format(self.github_url)

    async def rest(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {
            "Authorization": "token " + self.oauth_token,
            "Content-Type": "application/json",
            "User-Agent": "prstack",
            "Accept": "application/vnd.github.v3+json",
        }

        url = self.rest_endpoint + "/" + path
        if method == "get":
            timeout = aiohttp.ClientTimeout(total=READ_TIMEOUT_SECONDS)
        else:
            timeout = aiohttp.ClientTimeout(total=WRITE_TIMEOUT_SECONDS)

        async def send() -> prstack.retry.Response:
            logging.debug("# {} {}".format(method.upper(), url))
            if kwargs:
                logging.debug("Request body:\n{}".format(json.dumps(kwargs, indent=1)))

            async with aiohttp.request(
                method.upper(),
                url,
                json=kwargs if kwargs else None,
                headers=headers,
                proxy=self.proxy,
                timeout=timeout,
            ) as resp:
                logging.debug("Response status: {}".format(resp.status))
                return prstack.retry.Response(
                    status=resp.status,
                    headers={k.lower(): v for k, v in resp.headers.items()},
                    text=await resp.text(),
                )

        try:
            resp = await prstack.retry.send_with_retry(
                send, max_attempts=self.max_attempts, base_delay=self.base_delay
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise prstack.github.ApiError(
                "{} {} failed: {}".format(method.upper(), url, e)
            ) from e

        try:
            r = json.loads(resp.text) if resp.text else None
        except json.decoder.JSONDecodeError:
            logging.debug("Response body:\n{}".format(resp.text))
            raise
        else:
            pretty_json = json.dumps(r, indent=1)
            logging.debug("Response JSON:\n{}".format(pretty_json))

        if resp.status == 404:
            raise prstack.github.NotFoundError(
                """\
GitHub raised a 404 error on the request for
{url}.
Usually, this doesn't actually mean the page doesn't exist; instead, it
usually means that you didn't configure your OAuth token with enough
permissions.  Please create a new OAuth token at
https://{github_url}/settings/tokens and DOUBLE CHECK that you checked
"repo" for permissions, and update ~/.prstackrc with your new
value.
""".format(
                    url=url, github_url=self.github_url
                ),
                status=resp.status,
            )

        if resp.status >= 400:
            raise prstack.github.ApiError(pretty_json, status=resp.status)

        return r
