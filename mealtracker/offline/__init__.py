# -*- coding: utf-8 -*-
"""Offline shell cache (precache + network/cache fetch policies)."""
