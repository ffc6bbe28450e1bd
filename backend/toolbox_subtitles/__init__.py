"""Toolbox talk subtitle processing service."""
