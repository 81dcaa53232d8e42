"""Subscription billing."""
