"""Subscription provider client."""
