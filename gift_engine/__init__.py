"""Gift suggestion engine: multi-pass generation, deduplication and enrichment.

``create_app`` is resolved on first use; importing ``gift_engine.services``
or ``gift_engine.models`` never builds the FastAPI application.
"""

__version__ = "0.1.0"


def __getattr__(name):
    if name in ("app", "create_app"):
        from . import main

        return getattr(main, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["__version__", "app", "create_app"]
