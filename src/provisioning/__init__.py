"""Tool provisioner.

Fetches a (optionally pinned) revision of an external toolset repository,
installs a declared, ordered set of sub-tools from it, and removes the
fetched source on every exit path.
"""
