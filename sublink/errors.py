from __future__ import annotations


class SublinkError(Exception):
    """Base class for every error raised by sublink."""


class LinkError(SublinkError, ValueError):
    """A single subscription entry could not be decoded."""


class ConfigError(SublinkError):
    """The pipeline cannot produce a valid document.

    Raised for zero usable nodes, a routing rule whose target resolves to
    nothing, a cyclic group graph, or an emitted document that references an
    undeclared outbound.
    """


class FetchError(SublinkError):
    """A remote subscription could not be retrieved."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
