#!/usr/bin/env python3

import asyncio
import unittest
from unittest import mock

import prstack.github_fake

REPO = "pytorch/pytorch"


class TestListOpenPrs(unittest.TestCase):
    def setUp(self) -> None:
        self.github = prstack.github_fake.FakeGitHubEndpoint()

    def create(self, n: int) -> None:
        base = "main"
        for i in range(n):
            head = "b{}".format(i)
            self.github.create_pr(REPO, head, base)
            base = head

    def listing_requests(self) -> int:
        return len(
            [
                path
                for method, path in self.github.requests
                if method == "get" and path.split("?")[0] == "repos/{}/pulls".format(REPO)
            ]
        )

    def test_page_limit(self) -> None:
        self.create(5)
        with self.assertLogs(level="WARNING") as cm:
            prs = asyncio.run(
                self.github.list_open_prs(
                    REPO, per_page=2, max_pages=2, with_reviews=False
                )
            )
        self.assertEqual([pr.number for pr in prs], [500, 501, 502, 503])
        self.assertEqual(self.listing_requests(), 2)
        self.assertEqual(len(cm.output), 1)
        self.assertIn("after 2 pages", cm.output[0])

    def test_exactly_full_last_page(self) -> None:
        self.create(4)
        with mock.patch("logging.warning") as warning:
            prs = asyncio.run(
                self.github.list_open_prs(
                    REPO, per_page=2, max_pages=3, with_reviews=False
                )
            )
        self.assertEqual([pr.number for pr in prs], [500, 501, 502, 503])
        # The empty third page is what tells us we're done
        self.assertEqual(self.listing_requests(), 3)
        warning.assert_not_called()

    def test_short_page_stops(self) -> None:
        self.create(3)
        with mock.patch("logging.warning") as warning:
            prs = asyncio.run(
                self.github.list_open_prs(
                    REPO, per_page=2, max_pages=10, with_reviews=False
                )
            )
        self.assertEqual(len(prs), 3)
        self.assertEqual(self.listing_requests(), 2)
        warning.assert_not_called()

    def test_reviews_decide_approval(self) -> None:
        self.create(2)
        self.github.approve(REPO, 501)
        prs = asyncio.run(self.github.list_open_prs(REPO))
        self.assertEqual([pr.approved for pr in prs], [False, True])


if __name__ == "__main__":
    unittest.main()
