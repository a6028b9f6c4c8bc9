"""Resumable DataSync provisioning for S3-to-S3 transfers."""

__version__ = "0.1.0"
