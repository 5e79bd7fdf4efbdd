"""Core models, configuration, errors and logging for vidqueue."""
