"""readstreak - reading streaks computed from books and reading days."""

__version__ = "0.1.0"
