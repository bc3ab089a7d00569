"""Exception hierarchy for the radar pipeline.

Every error carries the HTTP status the web layer should answer with, so the
Flask error handler can render any of them without knowing the stage that
raised it.
"""

from __future__ import annotations


class RadarError(Exception):
    """Base class for all expected pipeline failures."""

    status_code: int = 500


class ConfigurationError(RadarError):
    """A provider credential or required setting is missing."""

    status_code = 500


class InvalidRequestError(RadarError):
    """The caller supplied something the pipeline cannot act on."""

    status_code = 400


class NotFoundError(RadarError):
    status_code = 404


class UpstreamError(RadarError):
    """An LLM or search provider call failed in a stage where that is fatal."""

    status_code = 502


class PlanParseError(UpstreamError):
    """The plan-generation response lacked a mermaid or XML block."""


class PersistenceError(RadarError):
    status_code = 500
