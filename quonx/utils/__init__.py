"""Utility modules: model access, project files and text helpers."""
