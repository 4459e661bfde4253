#!/usr/bin/env python3

import prstack.cli

if __name__ == "__main__":
    prstack.cli.main()
