"""Flat-file JSON storage layer.

This package persists keyed JSON records in collection folders and
composes them into nested namespaces with per-folder metadata indexes.
"""
