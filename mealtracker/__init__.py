# -*- coding: utf-8 -*-
"""Meal tracker: on-device meal log with offline shell caching."""

__version__ = "1.0.0"
