"""Selection criteria -> Kubernetes label selector."""

from __future__ import annotations

import re

from kubelog.errors import InvalidAppNameError

LABEL_GROUP = "theketch.io"
APP_NAME_LABEL = f"{LABEL_GROUP}/app-name"
PROCESS_NAME_LABEL = f"{LABEL_GROUP}/app-process"
DEPLOYMENT_VERSION_LABEL = f"{LABEL_GROUP}/app-deployment-version"

_NAME_RE = re.compile(r"[a-z][a-z0-9-]{0,39}")


def validate_app_name(name: str) -> str:
    """Return *name* unchanged, or raise InvalidAppNameError."""
    if not _NAME_RE.fullmatch(name):
        raise InvalidAppNameError()
    return name


def selector_labels(app_name: str, process_name: str = "", deployment_version: int = 0) -> dict[str, str]:
    labels = {APP_NAME_LABEL: app_name}
    if process_name:
        labels[PROCESS_NAME_LABEL] = process_name
    if deployment_version > 0:
        labels[DEPLOYMENT_VERSION_LABEL] = str(deployment_version)
    return labels


def build_selector(app_name: str, process_name: str = "", deployment_version: int = 0) -> str:
    """Render the label selector string, keys sorted for a stable result."""
    labels = selector_labels(app_name, process_name, deployment_version)
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))
