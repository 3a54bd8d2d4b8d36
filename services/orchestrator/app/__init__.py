"""Storybook generation orchestrator service."""
