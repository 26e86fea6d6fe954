"""Relay pipeline: dispatch, orchestration and progress reporting."""
