#!/usr/bin/env python3

import sys
import unittest

import prstack.shell


class TestShell(unittest.TestCase):
    def setUp(self) -> None:
        self.sh = prstack.shell.Shell()

    def py(self, code: str, **kwargs):  # type: ignore[no-untyped-def]
        return self.sh.sh(sys.executable, "-c", code, **kwargs)

    def test_stdout(self) -> None:
        self.assertEqual(self.py("print('hello')"), "hello\n")

    def test_stderr_not_captured_in_result(self) -> None:
        code = "import sys; sys.stderr.write('noise'); print('out')"
        with self.assertLogs(level="DEBUG") as cm:
            self.assertEqual(self.py(code), "out\n")
        self.assertTrue(any("noise" in line for line in cm.output))

    def test_failure_raises(self) -> None:
        with self.assertRaises(RuntimeError):
            self.py("raise SystemExit(3)")

    def test_exitcode(self) -> None:
        self.assertFalse(self.py("raise SystemExit(3)", exitcode=True))
        self.assertTrue(self.py("pass", exitcode=True))

    def test_env_is_additive(self) -> None:
        code = "import os; print(os.environ['PRSTACK_TEST'], 'PATH' in os.environ)"
        self.assertEqual(self.py(code, env={"PRSTACK_TEST": "1"}), "1 True\n")

    def test_git_strips_output(self) -> None:
        self.assertTrue(self.sh.git("--version").startswith("git version"))


if __name__ == "__main__":
    unittest.main()
