"""Vault operation orchestration: planning, funding, execution."""
