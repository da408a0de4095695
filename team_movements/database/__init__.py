"""SQLAlchemy models for the team_movements schema."""
