"""FastAPI layer for SiteLoom."""
