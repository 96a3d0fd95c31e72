"""Portal: a session-based web application with local and OAuth sign-in."""

__version__ = "0.1.0"
