"""Persistence models for the prompt resolution engine."""
