"""
Workload Identity Federation credential broker.

Self-hosted OIDC issuer that mints short-lived Google Cloud access tokens
through STS token exchange and service account impersonation.
"""

__version__ = "0.1.0"
