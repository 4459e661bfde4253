#!/usr/bin/env python3

import enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from typing_extensions import TypedDict

from prstack.typing import GitHubNumber

# Subset of the REST payloads we actually read.  GitHub sends a lot
# more than this.

PullRequestRefPayload = TypedDict(
    "PullRequestRefPayload",
    {
        "ref": str,
        "sha": str,
    },
)

PullRequestPayload = TypedDict(
    "PullRequestPayload",
    {
        "number": int,
        "head": PullRequestRefPayload,
        "base": PullRequestRefPayload,
        "title": str,
        "html_url": str,
        "state": str,
        "draft": bool,
        "merged_at": Optional[str],
        "updated_at": Optional[str],
    },
)

ReviewPayload = TypedDict(
    "ReviewPayload",
    {
        "state": str,
        "user": Optional[Dict[str, Any]],
    },
)


class PullRequestState(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class ReviewState(enum.Enum):
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    DISMISSED = "DISMISSED"
    COMMENTED = "COMMENTED"
    # Not something GitHub reports for a review; we use it to describe
    # a pull request that has already landed.
    MERGED = "MERGED"


class CheckState(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"
    # No checks, or everything was skipped
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class PullRequest:
    number: GitHubNumber
    # Head branch name; this is what other pull requests in a stack
    # refer to as their base, so it is the join key for everything.
    head: str
    base: str
    title: str
    state: PullRequestState = PullRequestState.OPEN
    draft: bool = False
    merged_at: Optional[str] = None
    approved: bool = False
    head_sha: str = ""
    # Browser URL as GitHub reports it, so enterprise hosts come out right
    html_url: str = ""
    updated_at: Optional[str] = None

    @staticmethod
    def from_json(payload: PullRequestPayload, *, approved: bool = False
                  ) -> "PullRequest":
        return PullRequest(
            number=GitHubNumber(payload["number"]),
            head=payload["head"]["ref"],
            base=payload["base"]["ref"],
            title=payload.get("title") or "",
            state=PullRequestState(payload.get("state", "open")),
            draft=bool(payload.get("draft", False)),
            merged_at=payload.get("merged_at"),
            approved=approved,
            head_sha=payload["head"].get("sha", ""),
            html_url=payload.get("html_url", ""),
            updated_at=payload.get("updated_at"),
        )

    def is_merged(self) -> bool:
        return self.merged_at is not None

    def is_open(self) -> bool:
        return self.state == PullRequestState.OPEN and not self.is_merged()

    def review_state(self) -> ReviewState:
        if self.is_merged():
            return ReviewState.MERGED
        elif self.approved:
            return ReviewState.APPROVED
        else:
            return ReviewState.PENDING

    def __str__(self) -> str:
        return "#{} {}".format(self.number, self.title.strip())


def is_approved(reviews: Iterable[ReviewPayload]) -> bool:
    """
    Whether a list of reviews (oldest first, as GitHub returns them)
    adds up to an approval: at least one reviewer's latest verdict is
    APPROVED and nobody's latest verdict is CHANGES_REQUESTED.  Plain
    comments don't change a reviewer's verdict.
    """
    latest: Dict[str, ReviewState] = {}
    for i, review in enumerate(reviews):
        try:
            state = ReviewState(review["state"])
        except ValueError:
            continue
        if state not in (
            ReviewState.APPROVED,
            ReviewState.CHANGES_REQUESTED,
            ReviewState.DISMISSED,
        ):
            continue
        user = review.get("user") or {}
        # Reviews without a user (deleted accounts) each count on their own
        login = user.get("login") or "<anonymous {}>".format(i)
        latest[login] = state
    verdicts = set(latest.values())
    return (
        ReviewState.APPROVED in verdicts
        and ReviewState.CHANGES_REQUESTED not in verdicts
    )


@dataclass(frozen=True)
class CheckStatus:
    state: CheckState
    total: int = 0
    passed: int = 0
    failed: int = 0
    pending: int = 0

    @staticmethod
    def neutral() -> "CheckStatus":
        return CheckStatus(state=CheckState.NEUTRAL)


_PASSED_CONCLUSIONS = {"success", "neutral", "skipped"}
_FAILED_CONCLUSIONS = {"failure", "timed_out", "cancelled", "action_required"}


def aggregate_check_runs(total_count: int,
                         check_runs: Iterable[Dict[str, Any]]) -> CheckStatus:
    if total_count == 0:
        return CheckStatus.neutral()

    passed = failed = pending = 0
    for run in check_runs:
        if run.get("status") == "completed":
            conclusion = run.get("conclusion")
            if conclusion in _PASSED_CONCLUSIONS:
                passed += 1
            elif conclusion in _FAILED_CONCLUSIONS:
                failed += 1
            else:
                pending += 1
        else:
            # queued, in_progress, or something we don't know about
            pending += 1

    if failed:
        state = CheckState.FAILURE
    elif pending:
        state = CheckState.PENDING
    elif passed:
        state = CheckState.SUCCESS
    else:
        state = CheckState.NEUTRAL

    return CheckStatus(
        state=state,
        total=total_count,
        passed=passed,
        failed=failed,
        pending=pending,
    )
