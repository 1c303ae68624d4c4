"""Workspace, fetch and data models for provisioning runs.

This package covers the pieces the Provisioner sequences:
- A scoped workspace that is always removed when a run ends
- A Git fetch, optionally pinned to a revision
- The run specification, report and error taxonomy
"""
