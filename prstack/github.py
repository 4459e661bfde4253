#!/usr/bin/env python3

import asyncio
import datetime
import logging
import urllib.parse
from abc import ABCMeta, abstractmethod
from typing import Any, List, Optional

from prstack.pull_request import (
    aggregate_check_runs,
    CheckStatus,
    is_approved,
    PullRequest,
    PullRequestPayload,
)

# Page size GitHub allows for the pulls listing
PER_PAGE = 100

# A repository with more open PRs than this has bigger problems than
# stacks; don't fetch forever
MAX_PAGES = 10


class GitHubError(RuntimeError):
    pass


class ApiError(GitHubError):
    status: Optional[int]

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(ApiError):
    pass


class RateLimitError(GitHubError):
    """
    Every attempt at a request was rate limited.  Carries what GitHub
    told us about the quota so we can tell the user how long to wait.
    """

    reset_time: Optional[datetime.datetime]
    limit: Optional[int]
    remaining: Optional[int]

    def __init__(
        self,
        reset_time: Optional[datetime.datetime] = None,
        limit: Optional[int] = None,
        remaining: Optional[int] = None,
    ) -> None:
        self.reset_time = reset_time
        self.limit = limit
        self.remaining = remaining
        super().__init__(self.describe())

    def describe(self, now: Optional[datetime.datetime] = None) -> str:
        if self.reset_time is None:
            return "GitHub API rate limit exceeded."
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)
        mins = max(1, int((self.reset_time - now).total_seconds() // 60))
        return "GitHub API rate limit exceeded. Try again in {} minute{}.".format(
            mins, "" if mins == 1 else "s"
        )


def _query(path: str, **params: Any) -> str:
    return "{}?{}".format(path, urllib.parse.urlencode(params))


class GitHubEndpoint(metaclass=ABCMeta):
    """
    Everything prstack needs from GitHub.  Subclasses only have to
    implement rest(); the pull request operations are built on top of it.
    """

    @abstractmethod
    async def rest(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a 'method' request to endpoint 'path'.

        Args:
            method: 'get', 'post', etc.
            path: relative URL path to access on endpoint, including
                any query string
            **kwargs: dictionary of JSON payload to send

        Returns: parsed JSON response
        """
        pass

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.rest("get", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.rest("post", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        return await self.rest("patch", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.rest("put", path, **kwargs)

    # Reads

    async def fetch_reviews(self, repo: str, number: int) -> List[Any]:
        return await self.get(
            _query("repos/{}/pulls/{}/reviews".format(repo, number), per_page=PER_PAGE)
        )

    async def _with_approval(
        self, repo: str, payloads: List[PullRequestPayload], with_reviews: bool
    ) -> List[PullRequest]:
        if not with_reviews:
            return [PullRequest.from_json(p) for p in payloads]

        # Independent reads, so fire them all at once
        reviews = await asyncio.gather(
            *[self.fetch_reviews(repo, p["number"]) for p in payloads]
        )
        return [
            PullRequest.from_json(p, approved=is_approved(r))
            for p, r in zip(payloads, reviews)
        ]

    async def list_open_prs(
        self,
        repo: str,
        *,
        max_pages: int = MAX_PAGES,
        per_page: int = PER_PAGE,
        with_reviews: bool = True,
    ) -> List[PullRequest]:
        payloads: List[PullRequestPayload] = []
        for page in range(1, max_pages + 1):
            r = await self.get(
                _query(
                    "repos/{}/pulls".format(repo),
                    state="open",
                    per_page=per_page,
                    page=page,
                )
            )
            payloads.extend(r)
            if len(r) < per_page:
                break
        else:
            logging.warning(
                "Stopped listing open pull requests of {} after {} pages; "
                "stacks may be incomplete".format(repo, max_pages)
            )
        return await self._with_approval(repo, payloads, with_reviews)

    async def get_pr(
        self, repo: str, number: int, *, with_reviews: bool = True
    ) -> PullRequest:
        r = await self.get("repos/{}/pulls/{}".format(repo, number))
        prs = await self._with_approval(repo, [r], with_reviews)
        return prs[0]

    async def get_pr_by_head(
        self, repo: str, branch: str, *, with_reviews: bool = True
    ) -> Optional[PullRequest]:
        owner = repo.split("/")[0]
        r = await self.get(
            _query(
                "repos/{}/pulls".format(repo),
                state="open",
                head="{}:{}".format(owner, branch),
            )
        )
        if not r:
            return None
        prs = await self._with_approval(repo, r[:1], with_reviews)
        return prs[0]

    async def get_prs_by_base(
        self, repo: str, branch: str, *, with_reviews: bool = True
    ) -> List[PullRequest]:
        r = await self.get(
            _query(
                "repos/{}/pulls".format(repo),
                state="open",
                base=branch,
                per_page=PER_PAGE,
            )
        )
        return await self._with_approval(repo, r, with_reviews)

    async def fetch_check_status(self, repo: str, sha: str) -> CheckStatus:
        r = await self.get(
            _query(
                "repos/{}/commits/{}/check-runs".format(repo, sha), per_page=PER_PAGE
            )
        )
        return aggregate_check_runs(r.get("total_count", 0), r.get("check_runs", []))

    async def fetch_mergeable_status(self, repo: str, number: int) -> Optional[bool]:
        """
        GitHub computes mergeability in the background; None means it
        hasn't gotten around to it yet.
        """
        r = await self.get("repos/{}/pulls/{}".format(repo, number))
        return r.get("mergeable")

    # Mutations

    async def update_pr_base(self, repo: str, number: int, new_base: str) -> None:
        await self.patch("repos/{}/pulls/{}".format(repo, number), base=new_base)

    async def merge_pr(self, repo: str, number: int, method: str = "squash") -> None:
        r = await self.put(
            "repos/{}/pulls/{}/merge".format(repo, number), merge_method=method
        )
        if not r.get("merged"):
            raise ApiError(
                "PR #{} was not merged: {}".format(number, r.get("message", ""))
            )

    async def close_pr_with_comment(
        self, repo: str, number: int, comment: str
    ) -> None:
        await self.post(
            "repos/{}/issues/{}/comments".format(repo, number), body=comment
        )
        await self.patch("repos/{}/pulls/{}".format(repo, number), state="closed")

