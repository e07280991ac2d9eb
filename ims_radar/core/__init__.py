"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants (URL template, file names, defaults)
- exceptions: Custom exception hierarchy
- observable: Cycle state/progress holder with ordered change notification
"""
