"""Domain services: courses, conversation store, material catalog, analytics."""
