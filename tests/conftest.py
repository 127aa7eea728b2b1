#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Pytest bootstrap for local package imports and runtime globals.
"""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def isolated_runtime_environment(monkeypatch):
    """
    Keep host variables of the machine running the tests out of the runtime.
    """
    from lambda_ric.core.config import reset_config

    for name in ("AWS_LAMBDA_RUNTIME_API", "_HANDLER", "_X_AMZN_TRACE_ID", "LAMBDA_RIC_STREAM_TLS"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
