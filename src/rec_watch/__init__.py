"""Watch a recreation-center activity page and alert when enrollment opens."""

__version__ = "0.3.0"
