"""Core module - settings and observability shared by every pipeline stage.

Stage logic (extraction, matching, inference, overhead, reporting) lives in
its own top-level package; this module holds only what all of them import.
"""

__version__ = "1.0.0"
