"""kubelog: chronologically merged and live-tailed logs for Kubernetes applications."""

__version__ = "0.1.0"
