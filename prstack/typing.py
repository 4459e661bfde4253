#!/usr/bin/env python3

from typing import NewType

# A bunch of commonly used type definitions.

GitHubNumber = NewType("GitHubNumber", int)  # aka 1234 (as in #1234)
