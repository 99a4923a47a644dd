"""Mailwatch: Gmail watch subscriptions and batched mail retrieval."""

__version__ = "0.1.0"
