#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Command line entry: ``python -m lambda_ric FILE.METHOD``.
"""

import argparse
import sys
from typing import List, Optional

from ._version import __version__
from .bootstrap import start_runtime
from .core.config import create_config
from .core.utils.exceptions import ConfigurationError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lambda-ric",
        description="Serve invocations from the runtime API with a Python handler.",
    )
    parser.add_argument(
        "handler",
        nargs="?",
        help="FILE.METHOD or FILE.CLASS.METHOD (defaults to $_HANDLER)",
    )
    parser.add_argument("--runtime-api", help="host:port of the runtime API")
    parser.add_argument("--task-root", help="directory holding the handler file")
    parser.add_argument("--log-level", help="debug, info, warning or error")
    parser.add_argument(
        "--max-invocations",
        type=int,
        default=None,
        help="exit after serving this many invocations",
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.max_invocations is not None and args.max_invocations <= 0:
        sys.stderr.write(
            "lambda-ric: --max-invocations must be positive, got {0}\n".format(args.max_invocations)
        )
        return 1

    overrides = {
        key: value
        for key, value in (
            ("runtime_api", args.runtime_api),
            ("task_root", args.task_root),
            ("log_level", args.log_level),
            ("handler", args.handler),
        )
        if value
    }
    try:
        config = create_config(**overrides)
    except ConfigurationError as exc:
        sys.stderr.write("lambda-ric: {0}\n".format(exc))
        return 1

    return int(start_runtime(config=config, max_invocations=args.max_invocations))


if __name__ == "__main__":
    sys.exit(main())
