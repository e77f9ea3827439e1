"""Streaming pod log tails."""

from k0watch.podlogs.manager import PodLogManager, PodLogSession, split_timestamp

__all__ = ["PodLogManager", "PodLogSession", "split_timestamp"]
