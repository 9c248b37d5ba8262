"""Visual helpers for reviewing face candidates."""
