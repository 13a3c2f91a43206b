"""Broker and result store adapters."""
