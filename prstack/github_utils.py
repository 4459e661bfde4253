#!/usr/bin/env python3

import re
from typing import Optional

from typing_extensions import TypedDict

import prstack.shell

# Names people give their trunk, most likely first
TRUNK_BRANCHES = ["main", "master", "develop", "dev", "trunk"]

GitHubRepoNameWithOwner = TypedDict(
    "GitHubRepoNameWithOwner",
    {
        "owner": str,
        "name": str,
    },
)


def parse_remote_url(remote_url: str, github_url: str) -> GitHubRepoNameWithOwner:
    host = re.escape(github_url)
    # ssh: git@github.com:owner/name.git
    m = re.match(r"^git@{}:([^/]+)/(.+?)(?:\.git)?/?$".format(host), remote_url)
    if not m:
        # https://github.com/owner/name(.git), ssh://git@github.com/owner/name
        m = re.search(r"{}[:/]([^/]+)/(.+?)(?:\.git)?/?$".format(host), remote_url)
    if not m:
        raise RuntimeError(
            "Couldn't determine repo owner and name from url: {}".format(remote_url)
        )
    return {"owner": m.group(1), "name": m.group(2)}


def get_github_repo_name_with_owner(
    *,
    sh: prstack.shell.Shell,
    github_url: str,
    remote_name: str,
) -> GitHubRepoNameWithOwner:
    # Grovel in remotes to figure it out
    remote_url = sh.git("remote", "get-url", remote_name)
    return parse_remote_url(remote_url, github_url)


def repo_slug(name_with_owner: GitHubRepoNameWithOwner) -> str:
    return "{}/{}".format(name_with_owner["owner"], name_with_owner["name"])


RE_PR_URL = re.compile(
    r"^https?://(?P<github_url>[^/]+)/(?P<owner>[^/]+)/(?P<name>[^/]+)"
    r"/pull/(?P<number>[0-9]+)(?:/.*)?$"
)

RE_PR_NUMBER = re.compile(r"^#?(?P<number>[0-9]+)$")

PullRequestRef = TypedDict(
    "PullRequestRef",
    {
        # "owner/name" when the reference was a URL
        "repo": Optional[str],
        "number": Optional[int],
        "branch": Optional[str],
    },
)


def parse_pull_request(ref: str) -> PullRequestRef:
    """
    Understand the ways people point at a pull request on the command
    line: a URL, "#123", "123", or the name of its head branch.
    """
    ref = ref.strip()
    if not ref:
        raise RuntimeError("Did not understand PR argument: it is empty")
    m = RE_PR_URL.match(ref)
    if m:
        return {
            "repo": "{}/{}".format(m.group("owner"), m.group("name")),
            "number": int(m.group("number")),
            "branch": None,
        }
    m = RE_PR_NUMBER.match(ref)
    if m:
        return {"repo": None, "number": int(m.group("number")), "branch": None}
    return {"repo": None, "number": None, "branch": ref}


def detect_trunk(sh: prstack.shell.Shell, remote_name: str) -> str:
    """
    Work out what the remote calls its trunk: whatever the remote's HEAD
    points at, or failing that the first of the usual names that exists.
    """
    head = sh.git(
        "symbolic-ref", "--quiet", "refs/remotes/{}/HEAD".format(remote_name),
        exitcode=True,
    )
    if head:
        ref = sh.git("symbolic-ref", "refs/remotes/{}/HEAD".format(remote_name))
        prefix = "refs/remotes/{}/".format(remote_name)
        if ref.startswith(prefix):
            return ref[len(prefix):]
    for branch in TRUNK_BRANCHES:
        if sh.git(
            "rev-parse", "--verify", "--quiet",
            "refs/remotes/{}/{}".format(remote_name, branch),
            exitcode=True,
        ):
            return branch
    raise RuntimeError(
        "Couldn't work out the trunk branch of {}; set trunk in ~/.prstackrc "
        "or run `git remote set-head {} --auto`".format(remote_name, remote_name)
    )
