"""Bucket-to-printer delivery agent: one SQS queue per client, CUPS on the host."""

__version__ = "1.0.0"
