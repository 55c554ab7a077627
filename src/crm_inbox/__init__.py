"""Multi-channel inbox ingestion pipeline for email and LinkedIn conversations."""
