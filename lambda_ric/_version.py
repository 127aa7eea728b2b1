#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Single source of truth for the lambda-ric package version.
"""

__version__ = "1.0.0"
