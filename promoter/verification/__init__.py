"""Health verification."""

from promoter.verification.health import HealthVerifier

__all__ = ["HealthVerifier"]
