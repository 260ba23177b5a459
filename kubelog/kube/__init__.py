"""Kubernetes integration for kubelog.

Submodules:
    client    -- KubeClient: kubernetes-asyncio pod lister, watcher and log opener.
    selectors -- Label selector construction and app-name validation.
"""
