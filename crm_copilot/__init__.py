"""Voice and text AI copilot for the CRM."""

__version__ = "0.1.0"
