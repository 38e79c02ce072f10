"""Core deployment engine: manifest loading, resolution, planning and execution."""
