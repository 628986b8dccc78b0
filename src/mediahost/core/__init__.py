"""Core domain, errors and interfaces."""
