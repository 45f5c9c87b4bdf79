"""Auth module — bearer-token authentication and role checks."""
