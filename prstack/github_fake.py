#!/usr/bin/env python3

import re
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Tuple

from typing_extensions import TypedDict

import prstack.github
from prstack.typing import GitHubNumber

CreatePullRequestInput = TypedDict(
    "CreatePullRequestInput",
    {
        "base": str,
        "head": str,
        "title": str,
        "draft": bool,
    },
    total=False,
)

UpdatePullRequestInput = TypedDict(
    "UpdatePullRequestInput",
    {
        "base": Optional[str],
        "title": Optional[str],
        "state": Optional[str],
    },
    total=False,
)


@dataclass
class CheckRun:
    status: str
    conclusion: Optional[str] = None


@dataclass
class PullRequest:
    number: GitHubNumber
    headRefName: str
    baseRefName: str
    title: str
    _repository: str  # nameWithOwner
    draft: bool = False
    state: str = "open"
    merged_at: Optional[str] = None
    # None means GitHub is still computing it
    mergeable: Optional[bool] = True
    headRefOid: str = ""
    merge_method: Optional[str] = None
    reviews: List[Dict[str, Any]] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "head": {"ref": self.headRefName, "sha": self.headRefOid},
            "base": {"ref": self.baseRefName, "sha": ""},
            "title": self.title,
            "html_url": "https://github.com/{}/pull/{}".format(
                self._repository, self.number
            ),
            "state": self.state,
            "draft": self.draft,
            "merged_at": self.merged_at,
            "updated_at": None,
            "mergeable": self.mergeable,
        }


# The "database" for our mock instance
class GitHubState:
    pull_requests: Dict[Tuple[str, GitHubNumber], PullRequest]
    check_runs: Dict[str, List[CheckRun]]
    _next_pull_request_number: Dict[str, int]
    # When a merge is attempted on one of these, GitHub says no
    unmergeable: Dict[GitHubNumber, str]

    def __init__(self) -> None:
        self.pull_requests = {}
        self.check_runs = {}
        self._next_pull_request_number = {}
        self.unmergeable = {}

    def pull_request(self, repo: str, number: GitHubNumber) -> PullRequest:
        try:
            return self.pull_requests[(repo, number)]
        except KeyError:
            raise prstack.github.NotFoundError(
                "unrecognized pull request #{} in repository {}".format(number, repo),
                status=404,
            )

    def next_pull_request_number(self, repo: str) -> GitHubNumber:
        r = GitHubNumber(self._next_pull_request_number.setdefault(repo, 500))
        self._next_pull_request_number[repo] += 1
        return r


class FakeGitHubEndpoint(prstack.github.GitHubEndpoint):
    """
    Serves the REST paths prstack uses out of an in-memory GitHubState.
    Every request is recorded in `requests` so tests can check what was
    sent and in which order; `fail()` makes matching requests raise.
    """

    state: GitHubState
    requests: List[Tuple[str, str]]
    _failures: List[Tuple[str, Pattern[str], Exception]]

    def __init__(self) -> None:
        self.state = GitHubState()
        self.requests = []
        self._failures = []

    # Test setup helpers

    def create_pr(
        self,
        repo: str,
        head: str,
        base: str,
        *,
        title: Optional[str] = None,
        draft: bool = False,
        approved: bool = False,
    ) -> GitHubNumber:
        number = self._create_pull(
            repo,
            {
                "head": head,
                "base": base,
                "title": title if title is not None else head,
                "draft": draft,
            },
        )["number"]
        if approved:
            self.approve(repo, number)
        return number

    def approve(self, repo: str, number: int, login: str = "reviewer") -> None:
        pr = self.state.pull_request(repo, GitHubNumber(number))
        pr.reviews.append({"state": "APPROVED", "user": {"login": login}})

    def request_changes(self, repo: str, number: int, login: str = "reviewer") -> None:
        pr = self.state.pull_request(repo, GitHubNumber(number))
        pr.reviews.append({"state": "CHANGES_REQUESTED", "user": {"login": login}})

    def set_check_runs(self, sha: str, runs: List[CheckRun]) -> None:
        self.state.check_runs[sha] = runs

    def fail(self, method: str, path_regex: str, exc: Exception) -> None:
        """
        Make requests whose method matches and whose path (without the
        query string) matches path_regex raise exc.
        """
        self._failures.append((method, re.compile(path_regex), exc))

    # REST handlers

    def _create_pull(self, repo: str, input: CreatePullRequestInput) -> Dict[str, Any]:
        state = self.state
        number = state.next_pull_request_number(repo)
        pr = PullRequest(
            number=number,
            headRefName=input["head"],
            baseRefName=input["base"],
            title=input.get("title", ""),
            _repository=repo,
            draft=input.get("draft", False),
            headRefOid="{:040x}".format(number),
        )
        state.pull_requests[(repo, number)] = pr
        return pr.to_json()

    def _update_pull(
        self, repo: str, number: GitHubNumber, input: UpdatePullRequestInput
    ) -> Dict[str, Any]:
        pr = self.state.pull_request(repo, number)
        if input.get("title") is not None:
            pr.title = input["title"]  # type: ignore[typeddict-item]
        if input.get("base") is not None:
            pr.baseRefName = input["base"]  # type: ignore[typeddict-item]
        if input.get("state") is not None:
            pr.state = input["state"]  # type: ignore[typeddict-item]
        return pr.to_json()

    def _list_pulls(self, repo: str, query: Dict[str, str]) -> List[Dict[str, Any]]:
        prs = [
            pr
            for (r, _), pr in sorted(self.state.pull_requests.items())
            if r == repo
        ]
        if query.get("state", "open") != "all":
            prs = [pr for pr in prs if pr.state == query.get("state", "open")]
        if "head" in query:
            # head filter is "owner:branch"
            branch = query["head"].split(":", 1)[-1]
            prs = [pr for pr in prs if pr.headRefName == branch]
        if "base" in query:
            prs = [pr for pr in prs if pr.baseRefName == query["base"]]
        per_page = int(query.get("per_page", 30))
        page = int(query.get("page", 1))
        return [pr.to_json() for pr in prs[(page - 1) * per_page : page * per_page]]

    def _merge_pull(
        self, repo: str, number: GitHubNumber, merge_method: str
    ) -> Dict[str, Any]:
        pr = self.state.pull_request(repo, number)
        if pr.state != "open":
            raise prstack.github.ApiError(
                "Pull Request #{} is not open".format(number), status=405
            )
        if number in self.state.unmergeable:
            return {"merged": False, "message": self.state.unmergeable[number]}
        pr.state = "closed"
        pr.merge_method = merge_method
        pr.merged_at = "2019-04-07T20:13:13Z"
        return {
            "merged": True,
            "message": "Pull Request successfully merged",
            "sha": "{:040x}".format(number + 1000),
        }

    def _check_runs(self, sha: str) -> Dict[str, Any]:
        runs = self.state.check_runs.get(sha, [])
        return {
            "total_count": len(runs),
            "check_runs": [
                {"status": r.status, "conclusion": r.conclusion} for r in runs
            ],
        }

    async def rest(self, method: str, path: str, **kwargs: Any) -> Any:
        self.requests.append((method, path))

        parsed = urllib.parse.urlsplit(path)
        query = dict(urllib.parse.parse_qsl(parsed.query))
        path = parsed.path

        for fail_method, fail_path, exc in self._failures:
            if fail_method == method and fail_path.search(path):
                raise exc

        if method == "get":
            m = re.match(r"^repos/([^/]+/[^/]+)/pulls$", path)
            if m:
                return self._list_pulls(m.group(1), query)
            m = re.match(r"^repos/([^/]+/[^/]+)/pulls/(\d+)$", path)
            if m:
                repo, number = m.group(1), GitHubNumber(int(m.group(2)))
                return self.state.pull_request(repo, number).to_json()
            m = re.match(r"^repos/([^/]+/[^/]+)/pulls/(\d+)/reviews$", path)
            if m:
                repo, number = m.group(1), GitHubNumber(int(m.group(2)))
                return list(self.state.pull_request(repo, number).reviews)
            m = re.match(r"^repos/([^/]+/[^/]+)/commits/([^/]+)/check-runs$", path)
            if m:
                return self._check_runs(m.group(2))
        elif method == "post":
            m = re.match(r"^repos/([^/]+/[^/]+)/pulls$", path)
            if m:
                return self._create_pull(m.group(1), kwargs)  # type: ignore[arg-type]
            m = re.match(r"^repos/([^/]+/[^/]+)/issues/(\d+)/comments$", path)
            if m:
                repo, number = m.group(1), GitHubNumber(int(m.group(2)))
                self.state.pull_request(repo, number).comments.append(kwargs["body"])
                return {"body": kwargs["body"]}
        elif method == "patch":
            m = re.match(r"^repos/([^/]+/[^/]+)/pulls/(\d+)$", path)
            if m:
                return self._update_pull(
                    m.group(1),
                    GitHubNumber(int(m.group(2))),
                    kwargs,  # type: ignore[arg-type]
                )
        elif method == "put":
            m = re.match(r"^repos/([^/]+/[^/]+)/pulls/(\d+)/merge$", path)
            if m:
                return self._merge_pull(
                    m.group(1),
                    GitHubNumber(int(m.group(2))),
                    kwargs.get("merge_method", "merge"),
                )
        raise NotImplementedError(
            "FakeGitHubEndpoint REST {} {} not implemented".format(method.upper(), path)
        )
