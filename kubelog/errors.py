"""Error taxonomy for kubelog.

Every error's ``str()`` is the line shown to the user, so it always names
the pod involved when there is one.
"""

from __future__ import annotations


class KubeLogError(Exception):
    """Base class for every error the log engine raises."""


class ParseError(KubeLogError):
    """A log line did not start with a parseable timestamp.

    Fatal for the read attempt that produced it.
    """

    def __init__(self, line: str, pod_name: str = "") -> None:
        reason = "unknown time format"
        super().__init__(f"failed to read logs from pod {pod_name}: {reason}" if pod_name else reason)
        self.line = line
        self.pod_name = pod_name


class ContainerResolutionError(KubeLogError):
    """No container of the pod follows the app-container naming convention."""

    def __init__(self, pod_name: str) -> None:
        super().__init__(f"pod {pod_name} doesn't have an app container")
        self.pod_name = pod_name


class TransportError(KubeLogError):
    """Opening or reading a log stream failed."""

    def __init__(self, pod_name: str, cause: object) -> None:
        super().__init__(f"failed to read logs from pod {pod_name}: {cause}")
        self.pod_name = pod_name
        self.cause = cause


class WatchClosedError(KubeLogError):
    """The pod watch stream ended; the live phase is over.

    ``cause`` is set when the watch broke instead of closing cleanly.
    """

    def __init__(self, namespace: str = "", cause: object | None = None) -> None:
        message = f"pod watch closed in namespace {namespace}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.namespace = namespace
        self.cause = cause


class InvalidAppNameError(KubeLogError):
    """The application name does not satisfy the naming rules."""

    def __init__(self) -> None:
        super().__init__(
            "invalid app name, app name should have at most 40 "
            "characters, containing only lower case letters, numbers or dashes, starting with a letter"
        )


class ApiRequestError(KubeLogError):
    """A Kubernetes API request other than a log stream failed."""

    def __init__(self, action: str, cause: object) -> None:
        super().__init__(f"failed to {action}: {cause}")
        self.action = action
        self.cause = cause


class ResourceLookupError(ApiRequestError):
    """An application or framework custom resource could not be fetched."""

    def __init__(self, kind: str, name: str, cause: object) -> None:
        super().__init__(f"get {kind} instance", cause)
        self.kind = kind
        self.name = name
