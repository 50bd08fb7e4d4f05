"""FMECA staging engine: diff, stage, merge and accept AI-proposed table edits."""

__version__ = "0.1.0"
