#!/usr/bin/env python3

import asyncio
import unittest

import expecttest

import prstack.cli
import prstack.github
import prstack.github_fake
import prstack.github_real
import prstack.land
from prstack.pull_request import PullRequest
from prstack.typing import GitHubNumber

REPO = "pytorch/pytorch"


class TestLog(expecttest.TestCase):
    def setUp(self) -> None:
        self.github = prstack.github_fake.FakeGitHubEndpoint()
        self.github.create_pr(REPO, "a", "main", title="Commit A")
        self.github.create_pr(REPO, "b", "a", title="Commit B", draft=True)
        self.github.create_pr(REPO, "x", "main", title="Commit X")

    def test_one_stack(self) -> None:
        self.assertExpectedInline(
            asyncio.run(prstack.cli.run_log(self.github, REPO, "a", "main")),
            """\
#501 Commit B (b -> a) [draft]
#500 Commit A (a -> main)""",
        )

    def test_all_stacks(self) -> None:
        self.assertExpectedInline(
            asyncio.run(prstack.cli.run_log(self.github, REPO, None, "main")),
            """\
#501 Commit B (b -> a) [draft]
#500 Commit A (a -> main)

#502 Commit X (x -> main)""",
        )

    def test_exclude(self) -> None:
        self.assertExpectedInline(
            asyncio.run(
                prstack.cli.run_log(self.github, REPO, "500", "main", exclude=[501])
            ),
            """#500 Commit A (a -> main)""",
        )

    def test_no_stacks(self) -> None:
        self.assertEqual(
            asyncio.run(prstack.cli.run_log(self.github, REPO, None, "develop")),
            "No stacks targeting develop in pytorch/pytorch",
        )


class TestStatus(unittest.TestCase):
    def test_exclude(self) -> None:
        github = prstack.github_fake.FakeGitHubEndpoint()
        github.create_pr(REPO, "a", "main", title="Commit A")
        github.create_pr(REPO, "b", "a", title="Commit B")
        out = asyncio.run(
            prstack.cli.run_status(github, REPO, "500", "main", exclude=[501])
        )
        self.assertIn("#500 Commit A", out)
        self.assertNotIn("#501", out)


class TestLand(unittest.TestCase):
    def test_land(self) -> None:
        github = prstack.github_fake.FakeGitHubEndpoint()
        github.create_pr(REPO, "a", "main", approved=True)
        github.create_pr(REPO, "b", "a", approved=True)
        out = asyncio.run(
            prstack.cli.run_land(
                github, REPO, "b", "main", prstack.land.LandOptions()
            )
        )
        self.assertEqual(
            out, "Landed #501: https://github.com/pytorch/pytorch/pull/501\nClosed #500"
        )

    def test_land_exclude(self) -> None:
        github = prstack.github_fake.FakeGitHubEndpoint()
        github.create_pr(REPO, "a", "main", approved=True)
        github.create_pr(REPO, "b", "a", approved=True)
        github.create_pr(REPO, "c", "b", approved=True)
        out = asyncio.run(
            prstack.cli.run_land(
                github,
                REPO,
                "#500",
                "main",
                prstack.land.LandOptions(),
                exclude=[502],
            )
        )
        self.assertEqual(
            out, "Landed #501: https://github.com/pytorch/pytorch/pull/501\nClosed #500"
        )
        self.assertEqual(github.state.pull_request(REPO, GitHubNumber(502)).state, "open")

    def test_describe_approval_required(self) -> None:
        self.assertEqual(
            prstack.cli.describe_land_error(
                prstack.land.ApprovalRequired(GitHubNumber(500))
            ),
            "PR #500 requires approval\n"
            "  Hint: Get approval for #500, or use --no-approval to skip this check",
        )

    def test_describe_draft_blocking(self) -> None:
        self.assertEqual(
            prstack.cli.describe_land_error(
                prstack.land.DraftBlocking(GitHubNumber(500))
            ),
            "PR #500 is a draft and blocks landing of PRs above it\n"
            "  Hint: Mark PR #500 as ready for review before landing",
        )

    def test_describe_other_land_error(self) -> None:
        self.assertEqual(
            prstack.cli.describe_land_error(prstack.land.NoPRsInStack()),
            "No PRs found in the stack",
        )

    def test_describe_partial_failure(self) -> None:
        pr = PullRequest(number=GitHubNumber(500), head="a", base="main", title="A")
        e = prstack.land.LandExecutionError(
            "close",
            GitHubNumber(501),
            "PR #502 was merged, but closing PR #501 failed: Server Error",
            merged=True,
            merge_url="https://github.com/pytorch/pytorch/pull/502",
            closed_prs=[pr],
        )
        self.assertEqual(
            prstack.cli.describe_execution_error(e),
            "PR #502 was merged, but closing PR #501 failed: Server Error\n"
            "Merged: https://github.com/pytorch/pytorch/pull/502\n"
            "Closed: #500\n"
            "The remaining PRs below the merged one need closing by hand.",
        )


class TestRestEndpoint(unittest.TestCase):
    def test_github_com(self) -> None:
        github = prstack.github_real.RealGitHubEndpoint("token")
        self.assertEqual(github.rest_endpoint, "https://api.github.com")

    def test_enterprise(self) -> None:
        github = prstack.github_real.RealGitHubEndpoint("token", "github.example.com")
        self.assertEqual(github.rest_endpoint, "https://github.example.com/api/v3")

    def test_override(self) -> None:
        github = prstack.github_real.RealGitHubEndpoint(
            "token", api_base="http://localhost:8080/"
        )
        self.assertEqual(github.rest_endpoint, "http://localhost:8080")


if __name__ == "__main__":
    unittest.main()
