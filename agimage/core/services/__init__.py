"""Application services: generation, quota reporting and sessions."""
