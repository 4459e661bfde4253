#!/usr/bin/env python3

import unittest

from prstack.pull_request import (
    aggregate_check_runs,
    CheckState,
    is_approved,
    PullRequest,
    PullRequestState,
    ReviewState,
)
from prstack.typing import GitHubNumber


def review(login: str, state: str):  # type: ignore[no-untyped-def]
    return {"state": state, "user": {"login": login}}


class TestIsApproved(unittest.TestCase):
    def test_no_reviews(self) -> None:
        self.assertFalse(is_approved([]))

    def test_single_approval(self) -> None:
        self.assertTrue(is_approved([review("alice", "APPROVED")]))

    def test_comment_only(self) -> None:
        self.assertFalse(is_approved([review("alice", "COMMENTED")]))

    def test_changes_requested_overrides(self) -> None:
        self.assertFalse(
            is_approved(
                [review("alice", "APPROVED"), review("bob", "CHANGES_REQUESTED")]
            )
        )

    def test_latest_verdict_counts(self) -> None:
        self.assertTrue(
            is_approved(
                [review("bob", "CHANGES_REQUESTED"), review("bob", "APPROVED")]
            )
        )
        self.assertFalse(
            is_approved(
                [review("bob", "APPROVED"), review("bob", "CHANGES_REQUESTED")]
            )
        )

    def test_comment_after_approval_keeps_it(self) -> None:
        self.assertTrue(
            is_approved([review("alice", "APPROVED"), review("alice", "COMMENTED")])
        )

    def test_dismissed(self) -> None:
        self.assertFalse(
            is_approved([review("alice", "APPROVED"), review("alice", "DISMISSED")])
        )

    def test_unknown_state_ignored(self) -> None:
        self.assertTrue(
            is_approved([review("alice", "APPROVED"), review("bob", "SOMETHING_NEW")])
        )


class TestAggregateCheckRuns(unittest.TestCase):
    def test_no_runs(self) -> None:
        status = aggregate_check_runs(0, [])
        self.assertEqual(status.state, CheckState.NEUTRAL)
        self.assertEqual(status.total, 0)

    def test_all_passed(self) -> None:
        status = aggregate_check_runs(
            3,
            [
                {"status": "completed", "conclusion": "success"},
                {"status": "completed", "conclusion": "skipped"},
                {"status": "completed", "conclusion": "neutral"},
            ],
        )
        self.assertEqual(status.state, CheckState.SUCCESS)
        self.assertEqual(status.passed, 3)

    def test_failure_wins(self) -> None:
        status = aggregate_check_runs(
            3,
            [
                {"status": "completed", "conclusion": "success"},
                {"status": "in_progress", "conclusion": None},
                {"status": "completed", "conclusion": "timed_out"},
            ],
        )
        self.assertEqual(status.state, CheckState.FAILURE)
        self.assertEqual((status.passed, status.failed, status.pending), (1, 1, 1))

    def test_pending(self) -> None:
        status = aggregate_check_runs(
            2,
            [
                {"status": "completed", "conclusion": "success"},
                {"status": "queued", "conclusion": None},
            ],
        )
        self.assertEqual(status.state, CheckState.PENDING)

    def test_unknown_conclusion_is_pending(self) -> None:
        status = aggregate_check_runs(
            1, [{"status": "completed", "conclusion": "stale"}]
        )
        self.assertEqual(status.state, CheckState.PENDING)


class TestPullRequest(unittest.TestCase):
    def test_from_json(self) -> None:
        pr = PullRequest.from_json(
            {
                "number": 12,
                "head": {"ref": "feature", "sha": "abc"},
                "base": {"ref": "main", "sha": "def"},
                "title": "Add feature ",
                "html_url": "https://github.com/pytorch/pytorch/pull/12",
                "state": "open",
                "draft": True,
                "merged_at": None,
                "updated_at": "2024-01-01T00:00:00Z",
            },
            approved=True,
        )
        self.assertEqual(pr.number, 12)
        self.assertEqual((pr.head, pr.base, pr.head_sha), ("feature", "main", "abc"))
        self.assertTrue(pr.draft)
        self.assertTrue(pr.is_open())
        self.assertEqual(pr.review_state(), ReviewState.APPROVED)
        self.assertEqual(str(pr), "#12 Add feature")
        self.assertEqual(pr.html_url, "https://github.com/pytorch/pytorch/pull/12")

    def test_merged(self) -> None:
        pr = PullRequest(
            number=GitHubNumber(3),
            head="a",
            base="main",
            title="A",
            state=PullRequestState.CLOSED,
            merged_at="2019-04-07T20:13:13Z",
        )
        self.assertTrue(pr.is_merged())
        self.assertFalse(pr.is_open())
        self.assertEqual(pr.review_state(), ReviewState.MERGED)

    def test_closed_not_merged(self) -> None:
        pr = PullRequest(
            number=GitHubNumber(3),
            head="a",
            base="main",
            title="A",
            state=PullRequestState.CLOSED,
        )
        self.assertFalse(pr.is_merged())
        self.assertFalse(pr.is_open())
        self.assertEqual(pr.review_state(), ReviewState.PENDING)


if __name__ == "__main__":
    unittest.main()
