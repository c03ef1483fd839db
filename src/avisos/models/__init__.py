"""Domain and database models for avisos."""
