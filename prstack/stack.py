#!/usr/bin/env python3

"""
Stack discovery.

GitHub doesn't know about stacks; all we get is a flat list of pull
requests, each naming a head branch and a base branch.  A stack is a
chain where every PR's base is the previous PR's head, with the bottom
one targeting trunk.  Everything here works on whatever data GitHub
gives us, which may be stale, partially excluded or even cyclic, so
every walk keeps explicit "seen" sets and the sort always terminates.
"""

import logging
from collections import deque
from typing import Callable, Collection, Deque, Dict, Iterable, List, Optional, Set

import prstack.github
from prstack.index import PRIndex
from prstack.pull_request import PullRequest

# Ordered bottom (closest to trunk) to top
Stack = List[PullRequest]


def discover_stack(
    index: PRIndex, starting_pr: PullRequest, trunk: str
) -> Dict[str, PullRequest]:
    """
    Find every pull request connected to starting_pr, walking up
    through its bases and down through PRs that target any branch we
    have found.

    Returns: head branch -> pull request, in no particular order; hand
        it to sort_stack() to get a Stack
    """
    visited: Dict[str, PullRequest] = {starting_pr.head: starting_pr}

    # Walk up: the PR whose head is our base, and so on until trunk
    up_queue = [starting_pr.base]
    seen_bases: Set[str] = set()
    while up_queue:
        base = up_queue.pop()
        if base == trunk or base in seen_bases or base in visited:
            continue
        seen_bases.add(base)
        pr = index.get_by_head(base)
        if pr is not None:
            visited[pr.head] = pr
            up_queue.append(pr.base)

    # Walk down: PRs whose base is anything we've found so far
    down_queue = list(visited.keys())
    seen_heads: Set[str] = set()
    while down_queue:
        head = down_queue.pop()
        if head in seen_heads:
            continue
        seen_heads.add(head)
        for child in index.get_by_base(head):
            if child.head not in visited:
                visited[child.head] = child
                down_queue.append(child.head)

    return visited


def sort_stack(prs: Iterable[PullRequest], trunk: str) -> Stack:
    """
    Order pull requests bottom to top.

    We follow the chain from trunk, taking the lowest numbered PR when
    several target the same branch.  When the chain breaks (someone
    excluded a PR in the middle, or GitHub answered while a retarget was
    in flight) we pick up any PR that targets trunk or something already
    placed.  Whatever is left after that is a cycle or an orphaned chain;
    it goes at the end in PR number order.  The result always contains
    every input PR exactly once and doesn't depend on the input order.
    """
    remaining = sorted(prs, key=lambda pr: (pr.number, pr.head, pr.base))
    result: Stack = []
    placed_heads: Set[str] = set()
    current_base = trunk

    while remaining:
        i = _find(remaining, lambda pr: pr.base == current_base)
        if i is None:
            i = _find(
                remaining, lambda pr: pr.base == trunk or pr.base in placed_heads
            )
        if i is None:
            logging.debug(
                "Could not order {}; appending as is".format(
                    ", ".join("#{}".format(pr.number) for pr in remaining)
                )
            )
            result.extend(remaining)
            break
        pr = remaining.pop(i)
        result.append(pr)
        placed_heads.add(pr.head)
        current_base = pr.head

    return result


def _find(
    prs: List[PullRequest], pred: Callable[[PullRequest], bool]
) -> Optional[int]:
    for i, pr in enumerate(prs):
        if pred(pr):
            return i
    return None


def group_into_stacks(all_open_prs: Iterable[PullRequest], trunk: str) -> List[Stack]:
    """
    Split every open pull request of a repository into stacks, one per
    PR that targets trunk.  A PR belongs to at most one stack; PRs that
    can't be traced back to trunk are left out.

    Returns: stacks, largest first
    """
    prs = list(all_open_prs)
    index = PRIndex.build(prs)
    roots = sorted((pr for pr in prs if pr.base == trunk), key=lambda pr: pr.number)

    stacks: List[Stack] = []
    assigned: Set[int] = set()
    for root in roots:
        if root.number in assigned:
            continue
        assigned.add(root.number)
        stack = [root]

        queue: Deque[str] = deque([root.head])
        while queue:
            head = queue.popleft()
            for child in index.get_by_base(head):
                if child.number not in assigned:
                    assigned.add(child.number)
                    stack.append(child)
                    queue.append(child.head)

        stacks.append(sort_stack(stack, trunk))

    if len(assigned) < len(prs):
        logging.debug(
            "{} open pull requests are not part of any stack on {}".format(
                len(prs) - len(assigned), trunk
            )
        )

    # sort() is stable, so stacks of equal size stay in root order
    stacks.sort(key=len, reverse=True)
    return stacks


async def fetch_stack(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    starting_pr: PullRequest,
    trunk: str,
    *,
    exclude: Collection[int] = (),
) -> Stack:
    """
    Fetch the open pull requests of repo once and return the sorted
    stack containing starting_pr.  PRs listed in exclude are treated as
    if they didn't exist.
    """
    prs = await github.list_open_prs(repo)
    index = PRIndex.build(pr for pr in prs if pr.number not in exclude)
    found = discover_stack(index, starting_pr, trunk)
    logging.debug(
        "Discovered {} pull requests in the stack of #{}".format(
            len(found), starting_pr.number
        )
    )
    return sort_stack(
        (pr for pr in found.values() if pr.number not in exclude), trunk
    )


async def fetch_all_stacks(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    trunk: str,
    *,
    exclude: Collection[int] = (),
) -> List[Stack]:
    prs = await github.list_open_prs(repo)
    return group_into_stacks((pr for pr in prs if pr.number not in exclude), trunk)


async def find_stack_for_number(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    number: int,
    trunk: str,
    *,
    exclude: Collection[int] = (),
) -> Stack:
    starting_pr = await github.get_pr(repo, number)
    return await fetch_stack(github, repo, starting_pr, trunk, exclude=exclude)


async def find_stack_for_branch(
    github: prstack.github.GitHubEndpoint,
    repo: str,
    branch: str,
    trunk: str,
    *,
    exclude: Collection[int] = (),
) -> Stack:
    starting_pr = await github.get_pr_by_head(repo, branch)
    if starting_pr is None:
        raise prstack.github.NotFoundError(
            "No open pull request in {} has head branch {}".format(repo, branch)
        )
    return await fetch_stack(github, repo, starting_pr, trunk, exclude=exclude)
