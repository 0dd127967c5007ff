"""Changelog Harvester - turns release announcements in a Slack channel into changelog entries.

This package watches a Slack channel, decides which messages describe a shipped
change, and extracts structured release records using a two-pass LLM pipeline
(classify + extract). Re-runs are idempotent: unchanged messages are skipped and
edited messages are re-extracted from scratch.

Components:
- main_ingest: FastAPI webhook + HTTP triggers
- main_socket: Socket Mode event listener
- main_sync: scheduled / manual sync CLI
- ingest: source adapter, thread hydration, dedup/edit detection
- llm: LLM client, prompts, classification and extraction passes
- pipeline: extraction engine and run orchestration
- store: SQLite persistence
- notify: announcement of new releases
"""
