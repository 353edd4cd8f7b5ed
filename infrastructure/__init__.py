"""Infrastructure layer — resilience and observability for the pitch pipeline.

Modules:
    circuit_breaker  Circuit breaker around classifier inference.
    metrics          Prometheus metrics registry.
"""
