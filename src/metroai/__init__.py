"""MetroAI field uploader - offline capture queue for metro defect reports."""

__version__ = "0.1.0"
