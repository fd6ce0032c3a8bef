"""Insurance file onboarding: canonical field mapping and transform job tracking."""

__version__ = "1.0.0"
