"""BitBake recipe generation for Cargo projects."""
