"""Broker and result store ports."""
