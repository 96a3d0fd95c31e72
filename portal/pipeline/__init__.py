"""Authenticated-session request pipeline.

Every request gets a RequestContext (session + current user) built by an
ordered list of steps; per-route guards run through the same Pipeline runner.
"""
from __future__ import annotations

from portal.pipeline.context import RequestContext, Session
from portal.pipeline.runner import Pipeline, Step

__all__ = ["Pipeline", "RequestContext", "Session", "Step"]
