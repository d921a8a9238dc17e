"""Workflow graph editor core: model, validation, execution, and history."""
