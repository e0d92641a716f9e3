"""VRChat REST endpoint modules (internal)."""
