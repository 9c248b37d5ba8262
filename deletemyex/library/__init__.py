"""Photo library contract, a directory-backed library and the hide/delete workflow."""
