#!/usr/bin/env python3

"""
Landing a stack.

Rather than merging every PR of the stack in turn (and waiting for CI
after each retarget), we find the topmost PR that is ready to go,
point it at trunk, squash-merge it (its branch already contains every
commit below it) and close the PRs below it as superseded.

Planning is a pure function so it can be previewed with --dry-run.
Execution is a sequence of irreversible remote mutations; if one fails
we stop and report how far we got, we never try to undo a merge.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import prstack.github
from prstack.pull_request import PullRequest
from prstack.typing import GitHubNumber


class LandError(RuntimeError):
    pass


class NoPRsInStack(LandError):
    def __init__(self) -> None:
        super().__init__("No PRs found in the stack")


class NoPRsMergeable(LandError):
    reason: str

    def __init__(self, reason: str) -> None:
        super().__init__("No PRs are mergeable: {}".format(reason))
        self.reason = reason


class DraftBlocking(LandError):
    pr_number: GitHubNumber

    def __init__(self, pr_number: GitHubNumber) -> None:
        super().__init__(
            "PR #{} is a draft and blocks landing of PRs above it".format(pr_number)
        )
        self.pr_number = pr_number


class ApprovalRequired(LandError):
    pr_number: GitHubNumber

    def __init__(self, pr_number: GitHubNumber) -> None:
        super().__init__("PR #{} requires approval".format(pr_number))
        self.pr_number = pr_number


class LandExecutionError(LandError):
    """
    A remote call failed partway through execute_land().  Nothing is
    rolled back: if `merged` is set, the top PR is on trunk and the PRs
    in `closed_prs` are closed; the rest of the plan needs finishing by
    hand.
    """

    # "retarget", "merge" or "close"
    step: str
    pr_number: GitHubNumber
    merged: bool
    merge_url: Optional[str]
    closed_prs: List[PullRequest]

    def __init__(
        self,
        step: str,
        pr_number: GitHubNumber,
        message: str,
        *,
        merged: bool = False,
        merge_url: Optional[str] = None,
        closed_prs: Sequence[PullRequest] = (),
    ) -> None:
        super().__init__(message)
        self.step = step
        self.pr_number = pr_number
        self.merged = merged
        self.merge_url = merge_url
        self.closed_prs = list(closed_prs)

    @property
    def rate_limit(self) -> Optional[prstack.github.RateLimitError]:
        if isinstance(self.__cause__, prstack.github.RateLimitError):
            return self.__cause__
        return None


@dataclass(frozen=True)
class LandOptions:
    # Stop at the first PR without an approving review
    require_approval: bool = True
    # Land at most this many PRs; None means everything mergeable
    max_count: Optional[int] = None


@dataclass(frozen=True)
class LandPlan:
    # The one PR that actually gets merged
    top_pr: PullRequest
    # Everything below top_pr, bottom to top; closed once top_pr lands
    prs_to_close: List[PullRequest] = field(default_factory=list)
    target_branch: str = "main"
    repository: str = ""

    def prs_to_land(self) -> List[PullRequest]:
        return self.prs_to_close + [self.top_pr]


@dataclass(frozen=True)
class LandResult:
    merged_pr: PullRequest
    closed_prs: List[PullRequest]
    merge_url: str


def create_land_plan(
    stack: Sequence[PullRequest],
    repository: str,
    options: LandOptions = LandOptions(),
) -> LandPlan:
    """
    Work out what landing `stack` (ordered bottom to top) would do.

    Closed and merged PRs are skipped.  Going up from the bottom we
    collect PRs until we hit a draft, an unapproved PR (if approval is
    required) or the count limit; the last one collected is merged and
    the rest are closed.  If the very first open PR is a draft or
    unapproved, nothing can land and we raise.

    Raises:
        NoPRsInStack, NoPRsMergeable, DraftBlocking, ApprovalRequired
    """
    if not stack:
        raise NoPRsInStack()

    open_prs = [pr for pr in stack if pr.is_open()]
    if not open_prs:
        raise NoPRsMergeable("All PRs are already merged or closed")

    # The bottom of the stack targets trunk, and so will the merge
    target_branch = stack[0].base

    mergeable: List[PullRequest] = []
    for pr in open_prs:
        if pr.draft:
            if not mergeable:
                raise DraftBlocking(pr.number)
            break
        if options.require_approval and not pr.approved:
            if not mergeable:
                raise ApprovalRequired(pr.number)
            break
        mergeable.append(pr)
        if options.max_count is not None and len(mergeable) >= options.max_count:
            break

    if not mergeable:
        raise NoPRsMergeable("No PRs passed approval/draft checks")

    return LandPlan(
        top_pr=mergeable[-1],
        prs_to_close=mergeable[:-1],
        target_branch=target_branch,
        repository=repository,
    )


def excluded_prs(
    stack: Sequence[PullRequest], plan: LandPlan, options: LandOptions = LandOptions()
) -> List[Tuple[PullRequest, str]]:
    """
    Open PRs of the stack that the plan leaves alone, with the reason.
    """
    landing = {pr.number for pr in plan.prs_to_land()}
    blocker: Optional[PullRequest] = None
    r = []
    for pr in stack:
        if not pr.is_open() or pr.number in landing:
            continue
        if pr.draft:
            reason = "draft"
        elif options.require_approval and not pr.approved:
            reason = "not approved"
        elif blocker is not None:
            reason = "blocked by #{}".format(blocker.number)
        else:
            reason = "over limit"
        if blocker is None and reason != "over limit":
            blocker = pr
        r.append((pr, reason))
    return r


def format_dry_run(plan: LandPlan, excluded: Sequence[Tuple[PullRequest, str]]) -> str:
    top = plan.top_pr
    lines = [
        "Landing Plan:",
        "  Target branch: {}".format(plan.target_branch),
        "",
        "  PRs to land ({}):".format(len(plan.prs_to_close) + 1),
    ]
    for pr in plan.prs_to_close:
        lines.append("    [x] #{}: {} (will close)".format(pr.number, pr.title.strip()))
    lines.append("    [x] #{}: {} <- will merge".format(top.number, top.title.strip()))

    if excluded:
        lines.append("")
        lines.append("  PRs not included ({}):".format(len(excluded)))
        for pr, reason in excluded:
            lines.append(
                "    [ ] #{}: {} ({})".format(pr.number, pr.title.strip(), reason)
            )

    lines.append("")
    lines.append("  Actions that would be taken:")
    lines.append(
        "    1. Update PR #{} base branch: {} -> {}".format(
            top.number, top.base, plan.target_branch
        )
    )
    lines.append(
        "    2. Squash-merge PR #{} into {}".format(top.number, plan.target_branch)
    )
    for i, pr in enumerate(plan.prs_to_close):
        lines.append(
            '    {}. Close PR #{} with comment: "{}"'.format(
                i + 3, pr.number, landed_comment(plan)
            )
        )
    lines.append("")
    lines.append("Run without --dry-run to execute.")
    return "\n".join(lines)


def landed_comment(plan: LandPlan) -> str:
    return "Landed via #{}".format(plan.top_pr.number)


async def execute_land(
    plan: LandPlan, github: prstack.github.GitHubEndpoint
) -> LandResult:
    """
    Carry out a plan from create_land_plan().  Every step depends on
    the one before it, so they run one at a time.

    Raises:
        LandExecutionError: a remote call failed; see its fields for
            what had already happened
    """
    top = plan.top_pr
    repo = plan.repository

    # Point the top PR at trunk first; otherwise we'd squash into a
    # branch that is about to go away
    logging.info(
        "Updating PR #{} base to {}...".format(top.number, plan.target_branch)
    )
    try:
        await github.update_pr_base(repo, top.number, plan.target_branch)
    except prstack.github.GitHubError as e:
        raise LandExecutionError(
            "retarget",
            top.number,
            "Failed to update base of PR #{}: {}".format(top.number, e),
        ) from e

    logging.info("Merging PR #{}...".format(top.number))
    try:
        await github.merge_pr(repo, top.number, method="squash")
    except prstack.github.GitHubError as e:
        raise LandExecutionError(
            "merge",
            top.number,
            "Failed to merge PR #{}: {}".format(top.number, e),
        ) from e
    merge_url = top.html_url

    comment = landed_comment(plan)
    closed: List[PullRequest] = []
    for pr in plan.prs_to_close:
        logging.info(
            "Closing PR #{} (landed via #{})...".format(pr.number, top.number)
        )
        try:
            await github.close_pr_with_comment(repo, pr.number, comment)
        except prstack.github.GitHubError as e:
            raise LandExecutionError(
                "close",
                pr.number,
                "PR #{} was merged, but closing PR #{} failed: {}".format(
                    top.number, pr.number, e
                ),
                merged=True,
                merge_url=merge_url,
                closed_prs=closed,
            ) from e
        closed.append(pr)

    return LandResult(merged_pr=top, closed_prs=closed, merge_url=merge_url)
