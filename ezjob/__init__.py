"""Scheduling and throttling core for the EzJob application tracker."""

__version__ = "1.0.0"
