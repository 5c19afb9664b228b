"""Operator tooling (command line)."""
