"""Nethunter install pipeline: transport, probe, artifacts, session and engine."""
