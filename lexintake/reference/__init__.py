"""Reference data tables (canonical county list)."""
