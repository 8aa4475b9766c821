"""Prompt templates for the release approval drafter."""
