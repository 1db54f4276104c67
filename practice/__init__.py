"""Scripted players that drive the engine without a terminal."""
