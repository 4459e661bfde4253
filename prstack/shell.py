#!/usr/bin/env python3

import logging
import os
import subprocess
from typing import Any, Dict, Optional, Sequence, Union, overload

# Commands return their stdout as str, but with exitcode=True they
# return whether they succeeded.
_SHELL_RET = Union[bool, str]


def log_command(args: Sequence[str]) -> None:
    """
    Log a command in a form you could paste back into a terminal.
    """
    cmd = subprocess.list2cmdline(args).replace("\n", "\\n")
    logging.debug("$ " + cmd)


class Shell(object):
    """
    Runs commands in a fixed working directory.  prstack only ever
    reads from the local repository (which remote we're on, what trunk
    is called); all the changes happen on GitHub.
    """

    # Current working directory of shell.
    cwd: str

    def __init__(self, cwd: Optional[str] = None):
        """
        Args:
            cwd: Current working directory of the shell.  Pass None to
                initialize to the current cwd of the current process.
        """
        self.cwd = cwd if cwd else os.getcwd()

    def sh(
        self,
        *args: str,
        env: Optional[Dict[str, str]] = None,
        exitcode: bool = False,
    ) -> _SHELL_RET:
        """
        Run a command specified by args, and return string representing
        the stdout of the run command, raising an error if exit code
        was nonzero (unless exitcode kwarg is specified; see below).

        Args:
            *args: the list of command line arguments to run
            env: any extra environment variables to set when running the
                command.  Environment variables set this way are ADDITIVE
                (unlike subprocess default)
            exitcode: if True, return a bool rather than string, specifying
                whether or not the process successfully returned with exit
                code 0.  We never raise an exception when this is True.
        """
        log_command(args)
        if env is not None:
            env = {**os.environ, **env}
        p = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=self.cwd,
            env=env,
        )
        if p.stderr:
            logging.debug(p.stderr.decode(errors="replace").rstrip())
        if exitcode:
            logging.debug("Exit code: {}".format(p.returncode))
            return p.returncode == 0
        if p.returncode != 0:
            raise RuntimeError(
                "{} failed with exit code {}".format(" ".join(args), p.returncode)
            )
        r = p.stdout.decode()
        logging.debug(r)
        return r

    @overload  # noqa: F811
    def git(self, *args: str) -> str:
        ...

    @overload  # noqa: F811
    def git(self, *args: str, **kwargs: Any) -> _SHELL_RET:
        ...

    def git(self, *args: str, **kwargs: Any) -> _SHELL_RET:  # noqa: F811
        """
        Run a git command.  The returned stdout has trailing newlines stripped.

        Args:
            *args: Arguments to git
            **kwargs: Any valid kwargs for sh()
        """
        env = kwargs.setdefault("env", {})
        # Keep output parseable
        env.setdefault("LANG", "C")
        env.setdefault("LC_ALL", "C")
        env.setdefault("PAGER", "cat")
        r = self.sh(*(("git",) + args), **kwargs)
        if isinstance(r, str):
            return r.rstrip()
        return r
