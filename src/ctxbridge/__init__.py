"""ctxbridge - business context server and hybrid client for AI coding assistants."""

__version__ = "0.1.0"
