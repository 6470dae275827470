"""Profile answer resolution keyed on field type."""

from .resolver import ProfileResolver, build_profile_summary, load_profile

__all__ = ["ProfileResolver", "build_profile_summary", "load_profile"]
