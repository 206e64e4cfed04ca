"""
Storage quota accounting for user images.

Tracks project-wide and per-user object storage against tiered limits,
gates uploads, reclaims space from old profile photos, and reconciles the
cached project counter against the object store.
"""
