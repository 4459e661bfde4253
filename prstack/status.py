#!/usr/bin/env python3

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import prstack.github
from prstack.pull_request import CheckState, CheckStatus, PullRequest, ReviewState

MAX_TITLE_LEN = 50


class StatusBit(enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    NOT_APPLICABLE = "n/a"

    def symbol(self) -> str:
        return _SYMBOLS[self]


_SYMBOLS = {
    StatusBit.PASSED: "Y",
    StatusBit.FAILED: "N",
    StatusBit.PENDING: "?",
    StatusBit.NOT_APPLICABLE: "-",
}


@dataclass(frozen=True)
class PRStatus:
    pr: PullRequest
    ci: StatusBit
    approved: StatusBit
    mergeable: StatusBit
    # Every PR up to and including this one is approved and not a draft,
    # i.e. landing up to here would be allowed
    stack_clear: StatusBit


def check_status_to_bit(status: CheckStatus) -> StatusBit:
    return {
        CheckState.SUCCESS: StatusBit.PASSED,
        CheckState.FAILURE: StatusBit.FAILED,
        CheckState.PENDING: StatusBit.PENDING,
        CheckState.NEUTRAL: StatusBit.NOT_APPLICABLE,
    }[status.state]


def approval_to_bit(pr: PullRequest) -> StatusBit:
    if pr.review_state() in (ReviewState.APPROVED, ReviewState.MERGED):
        return StatusBit.PASSED
    return StatusBit.FAILED


def mergeable_to_bit(mergeable: Optional[bool]) -> StatusBit:
    if mergeable is None:
        # GitHub hasn't finished computing it
        return StatusBit.PENDING
    return StatusBit.PASSED if mergeable else StatusBit.FAILED


def stack_clear(stack: Sequence[PullRequest], i: int) -> StatusBit:
    for pr in stack[: i + 1]:
        if pr.draft or approval_to_bit(pr) is not StatusBit.PASSED:
            return StatusBit.FAILED
    return StatusBit.PASSED


async def _fetch_bits(
    github: prstack.github.GitHubEndpoint, repo: str, pr: PullRequest
) -> Tuple[StatusBit, StatusBit]:
    checks, mergeable = await asyncio.gather(
        github.fetch_check_status(repo, pr.head_sha),
        github.fetch_mergeable_status(repo, pr.number),
        return_exceptions=True,
    )
    # A status display with holes in it is still useful, so per-PR
    # failures turn into "-" rather than aborting
    if isinstance(checks, prstack.github.GitHubError):
        logging.debug("Could not fetch checks for #{}: {}".format(pr.number, checks))
        ci = StatusBit.NOT_APPLICABLE
    elif isinstance(checks, BaseException):
        raise checks
    else:
        ci = check_status_to_bit(checks)
    if isinstance(mergeable, prstack.github.GitHubError):
        logging.debug(
            "Could not fetch mergeability for #{}: {}".format(pr.number, mergeable)
        )
        merge_bit = StatusBit.NOT_APPLICABLE
    elif isinstance(mergeable, BaseException):
        raise mergeable
    else:
        merge_bit = mergeable_to_bit(mergeable)
    return ci, merge_bit


async def fetch_stack_status(
    github: prstack.github.GitHubEndpoint, repo: str, stack: Sequence[PullRequest]
) -> List[PRStatus]:
    """
    Check CI, review and mergeability of every open PR of a stack.  All
    the lookups for all the PRs go out concurrently.

    Returns: one PRStatus per open PR, bottom to top
    """
    open_prs = [pr for pr in stack if pr.is_open()]
    bits = await asyncio.gather(*[_fetch_bits(github, repo, pr) for pr in open_prs])
    return [
        PRStatus(
            pr=pr,
            ci=ci,
            approved=approval_to_bit(pr),
            mergeable=mergeable,
            stack_clear=stack_clear(open_prs, i),
        )
        for i, (pr, (ci, mergeable)) in enumerate(zip(open_prs, bits))
    ]


def truncate_title(title: str, max_len: int = MAX_TITLE_LEN) -> str:
    if len(title) <= max_len:
        return title
    return title[: max(0, max_len - 3)] + "..."


def format_status(statuses: Sequence[PRStatus]) -> str:
    """
    One line per PR, top of the stack first, like `git log`.
    Columns are CI, approval, mergeability and stack clear.
    """
    lines = ["CI AP MG SC"]
    for s in reversed(statuses):
        lines.append(
            "{}  {}  {}  {}  #{} {}{}".format(
                s.ci.symbol(),
                s.approved.symbol(),
                s.mergeable.symbol(),
                s.stack_clear.symbol(),
                s.pr.number,
                truncate_title(s.pr.title.strip()),
                " (draft)" if s.pr.draft else "",
            )
        )
    return "\n".join(lines)
