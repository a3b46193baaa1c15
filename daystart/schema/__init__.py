"""ORM models for the jobs, content cache and maintenance tables."""
