"""HTTP API for the print bridge."""
