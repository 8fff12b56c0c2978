"""Support ticketing service with field-level change auditing."""
