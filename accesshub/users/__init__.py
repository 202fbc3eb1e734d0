"""User accounts: admin management, self-registration and profiles."""
