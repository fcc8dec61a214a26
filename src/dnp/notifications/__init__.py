"""Notification matching and dispatch."""

from dnp.notifications.matcher import match_interests, representative_point, within_radius
from dnp.notifications.push import HttpPushSender, PushSender
from dnp.notifications.runner import MatchingPipeline, MatchRunSummary, run_matching

__all__ = [
    "HttpPushSender",
    "MatchingPipeline",
    "MatchRunSummary",
    "PushSender",
    "match_interests",
    "representative_point",
    "run_matching",
    "within_radius",
]
