"""Inbound HTTP API."""

from stms.api.server import ApiServer

__all__ = ["ApiServer"]
