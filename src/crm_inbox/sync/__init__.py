"""Ingestion pipeline: normalize, resolve threads, write, fetch bodies, orchestrate syncs.

Submodules are imported directly (``crm_inbox.sync.writer`` etc.) because
the provider clients depend on the normalizer.
"""
