"""Credential-forwarding relay server."""

from llm_vetting.relay.app import create_app

__all__ = ["create_app"]
