#!/usr/bin/env python3

import importlib.metadata as importlib_metadata

__version__ = importlib_metadata.version("prstack")
