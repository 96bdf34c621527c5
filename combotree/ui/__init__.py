"""Presentation collaborators: change sinks and Rich console rendering."""
