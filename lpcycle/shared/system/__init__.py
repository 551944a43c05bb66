"""Logging, errors and the retry primitive shared across lpcycle."""
