#!/usr/bin/env python3

import logging
from typing import Dict, Iterable, List, Optional

from prstack.pull_request import PullRequest
from prstack.typing import GitHubNumber


class PRIndex:
    """
    Lookup tables over a batch of pull requests fetched in one go, so
    that walking a stack doesn't cost a round trip per branch.  Build it
    once per operation and don't mutate it afterwards.
    """

    # head branch -> pull request
    by_head: Dict[str, PullRequest]

    # base branch -> pull requests targeting it
    by_base: Dict[str, List[PullRequest]]

    # Numbers of pull requests that were shadowed in by_head because a
    # later pull request had the same head branch
    duplicate_heads: List[GitHubNumber]

    def __init__(self) -> None:
        self.by_head = {}
        self.by_base = {}
        self.duplicate_heads = []

    @staticmethod
    def build(prs: Iterable[PullRequest]) -> "PRIndex":
        index = PRIndex()
        for pr in prs:
            prev = index.by_head.get(pr.head)
            if prev is not None and prev.number != pr.number:
                # GitHub doesn't stop you from opening two PRs from the
                # same branch (e.g. against different bases).  Last one
                # wins.
                logging.warning(
                    "PR #{} and PR #{} both use head branch {}; using #{}".format(
                        prev.number, pr.number, pr.head, pr.number
                    )
                )
                index.duplicate_heads.append(prev.number)
            index.by_head[pr.head] = pr
            index.by_base.setdefault(pr.base, []).append(pr)
        return index

    def get_by_head(self, branch: str) -> Optional[PullRequest]:
        return self.by_head.get(branch)

    def get_by_base(self, branch: str) -> List[PullRequest]:
        return self.by_base.get(branch, [])

    def __len__(self) -> int:
        return len(self.by_head)
