"""Observability facade wrapping Pydantic Logfire.

No-ops when logfire is not installed or not enabled in configuration, so
callers can always fall back to the stdlib logger.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from postboard.config import Settings

_logfire = None
_configured = False


def is_available() -> bool:
    return _logfire is not None and _configured


def configure(settings: Settings) -> None:
    """Initialize logfire from the ``logfire`` settings section."""
    global _logfire, _configured

    if not settings.logfire.enabled:
        return

    try:
        import logfire as lf
    except ImportError:
        return

    kwargs: dict[str, Any] = {
        "service_name": settings.logfire.service_name,
        "send_to_logfire": "if-token-present",
    }
    if settings.logfire.environment:
        kwargs["environment"] = settings.logfire.environment
    if settings.logfire.sample_rate != 1.0:
        kwargs["trace_sample_rate"] = settings.logfire.sample_rate
    if settings.logfire.console:
        kwargs["console"] = lf.ConsoleOptions()

    lf.configure(**kwargs)
    _logfire = lf
    _configured = True


def instrument_app(app):
    """Wrap an ASGI app with logfire instrumentation. Returns the app unchanged if unavailable."""
    if not is_available():
        return app
    return _logfire.instrument_asgi(app)


def instrument_sqlalchemy(engine) -> None:
    if is_available():
        _logfire.instrument_sqlalchemy(engine=engine)


@contextmanager
def span(name: str, **attrs: Any):
    """Context manager that yields a logfire span, or None if unavailable."""
    if is_available():
        with _logfire.span(name, **attrs) as s:
            yield s
    else:
        yield None


def exception(msg: str, **kwargs: Any) -> bool:
    """Log an exception with traceback via logfire. Returns True if logged, False if unavailable."""
    if is_available():
        _logfire.exception(msg, **kwargs)
        return True
    return False


@contextmanager
def reaction_span(operation: str, target: str, target_id: int, user_id: int, kind: Any):
    """Span around one reaction transition, tagged with the edge it touches."""
    with span(
        f"reactions.{operation}",
        target=target,
        target_id=target_id,
        user_id=user_id,
        kind=getattr(kind, "value", kind),
    ) as s:
        yield s


def set_attributes(s: Any, **attrs: Any) -> None:
    """Attach attributes to a span yielded by this module; no-op for None."""
    if s is None:
        return
    for key, value in attrs.items():
        s.set_attribute(key, value)


def warning(msg: str, **kwargs: Any) -> bool:
    """Mirror a warning to logfire. Returns True if sent, False if unavailable."""
    if is_available():
        _logfire.warn(msg, **kwargs)
        return True
    return False
