"""Raw session count sources for per-class billing."""

from compensation_engine.sources.session_source import SessionSource, StaticSessionSource

__all__ = ["SessionSource", "StaticSessionSource"]
