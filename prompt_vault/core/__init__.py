"""
Core modules for prompt-vault.

This package contains the session/version store, autosave scheduling,
the naming workflow and usage analytics.
"""
