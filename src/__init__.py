"""Personalization state engine packages."""
