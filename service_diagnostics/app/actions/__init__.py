"""Remediation action execution."""
