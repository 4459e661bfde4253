#!/usr/bin/env python3

import contextlib
import datetime
import functools
import logging
import os
import re
import shutil
import subprocess
import sys
import uuid
from typing import Iterator

DATETIME_FORMAT = "%Y-%m-%d_%Hh%Mm%Ss"

# Number of past runs we keep logs of
KEEP_RUNS = 100

RE_LOG_DIRNAME = re.compile(
    r"(\d{4}-\d\d-\d\d_\d\dh\d\dm\d\ds)_"
    r"[0-9a-f]{8}-(?:[0-9a-f]{4}-){3}[0-9a-f]{12}"
)


@functools.lru_cache()
def base_dir() -> str:
    base_dir = os.path.join(os.path.expanduser("~"), ".prstack", "log")
    os.makedirs(base_dir, exist_ok=True)
    return base_dir


@functools.lru_cache()
def run_dir() -> str:
    # NB: respects timezone
    cur_dir = os.path.join(
        base_dir(),
        "{}_{}".format(datetime.datetime.now().strftime(DATETIME_FORMAT), uuid.uuid1()),
    )
    os.makedirs(cur_dir, exist_ok=True)
    return cur_dir


def record_exception(e: BaseException) -> None:
    with open(os.path.join(run_dir(), "exception"), "w") as f:
        f.write(type(e).__name__)


@functools.lru_cache()
def record_argv() -> None:
    with open(os.path.join(run_dir(), "argv"), "w") as f:
        f.write(subprocess.list2cmdline(sys.argv[1:]))


def rotate() -> None:
    log_base = base_dir()
    old_logs = os.listdir(log_base)
    old_logs.sort(reverse=True)
    for stale_log in old_logs[KEEP_RUNS:]:
        # Leave alone anything we didn't put there
        if not RE_LOG_DIRNAME.fullmatch(stale_log):
            continue
        shutil.rmtree(os.path.join(log_base, stale_log))


@contextlib.contextmanager
def manager(*, debug: bool = False) -> Iterator[None]:
    """
    Send log messages to stderr (INFO, or DEBUG with debug=True) and
    everything, DEBUG included, to a file in a fresh per-run directory
    under ~/.prstack/log.  If the body raises, the exception type is
    recorded next to the log.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console_handler)

    rotate()
    log_file = os.path.join(run_dir(), "prstack.log")
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    )
    root.addHandler(file_handler)

    record_argv()

    try:
        yield
    except Exception as e:
        record_exception(e)
        logging.debug("Run log is at {}".format(log_file))
        raise
    finally:
        root.removeHandler(console_handler)
        root.removeHandler(file_handler)
        file_handler.close()
