#!/usr/bin/env python3

import configparser
import getpass
import logging
import os
from typing import NamedTuple, Optional, Sequence

CONFIG_FILES = [".prstackrc", "~/.prstackrc"]

Config = NamedTuple(
    "Config",
    [
        # OAuth token to authenticate to GitHub with
        ("github_oauth", Optional[str]),
        # GitHub host; "github.com" unless you're on an enterprise instance
        ("github_url", str),
        # Full REST endpoint, for when it isn't at the usual place for
        # github_url (e.g. a local mock server)
        ("api_base", Optional[str]),
        # Proxy to use when making connections to GitHub
        ("proxy", Optional[str]),
        # Remote whose URL tells us which repository we're in
        ("remote_name", str),
        # Trunk branch; detected from the remote if unset
        ("trunk", Optional[str]),
        # Whether landing needs an approving review on every PR
        ("require_approval", bool),
        # Rate limit retries
        ("max_attempts", int),
        ("base_delay", float),
    ],
)


def read_config(
    *,
    request_github_token: bool = True,
    config_files: Sequence[str] = CONFIG_FILES,
) -> Config:  # noqa: C901
    config = configparser.ConfigParser()
    config.read([os.path.expanduser(f) for f in config_files])

    write_back = False

    if not config.has_section("prstack"):
        config.add_section("prstack")

    # Environment variables override config file
    github_oauth = os.getenv("GITHUB_TOKEN") or os.getenv("OAUTH_TOKEN")
    if not github_oauth and config.has_option("prstack", "github_oauth"):
        github_oauth = config.get("prstack", "github_oauth")
    if not github_oauth and request_github_token:
        github_oauth = getpass.getpass(
            "GitHub OAuth token (make one at "
            "https://github.com/settings/tokens -- "
            "we need repo permissions): "
        ).strip()
        config.set("prstack", "github_oauth", github_oauth)
        write_back = True

    github_url = config.get("prstack", "github_url", fallback="github.com")
    api_base = config.get("prstack", "api_base", fallback=None)
    proxy = config.get("prstack", "proxy", fallback=None)
    remote_name = config.get("prstack", "remote_name", fallback="origin")
    trunk = config.get("prstack", "trunk", fallback=None)
    require_approval = config.getboolean("prstack", "require_approval", fallback=True)
    max_attempts = config.getint("prstack", "max_attempts", fallback=3)
    base_delay = config.getfloat("prstack", "base_delay", fallback=1.0)

    if max_attempts < 1:
        raise RuntimeError(
            "max_attempts must be at least 1, got {}".format(max_attempts)
        )

    if write_back:
        config_path = os.path.expanduser(config_files[-1])
        with open(config_path, "w") as f:
            config.write(f)
        logging.info("NB: configuration saved to {}".format(config_path))

    return Config(
        github_oauth=github_oauth,
        github_url=github_url,
        api_base=api_base,
        proxy=proxy,
        remote_name=remote_name,
        trunk=trunk,
        require_approval=require_approval,
        max_attempts=max_attempts,
        base_delay=base_delay,
    )
