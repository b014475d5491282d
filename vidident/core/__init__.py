"""Identification algorithms: gap statistics, boundaries, disc analysis, search and resolution."""
