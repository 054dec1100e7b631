"""Template functions, metrics and storage destinations for generated secrets."""

__version__ = "0.1.0"
__all__ = ["functions", "metrics", "media", "aws", "gcp", "k8s"]