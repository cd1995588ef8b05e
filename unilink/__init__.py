"""UniLink: data synchronization and optimistic-update core for the student networking app."""

__version__ = "0.1.0"
