# -*- coding: utf-8 -*-
"""Meals domain (record store, image codec, display handles)."""
