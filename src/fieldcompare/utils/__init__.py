"""
Supporting modules for fieldcompare

Provides:
- logging: structured logging setup and ContextLogger
- retry: backoff for transient database errors
- tracing: OpenTelemetry spans
- metrics: Prometheus collectors and HTTP exporter
- vault_client: HashiCorp Vault credential lookup
"""

__all__ = ["logging", "retry", "tracing", "metrics", "vault_client"]
