from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo


DEFAULT_TIMEZONE = "Asia/Ho_Chi_Minh"
DEFAULT_NOW_FORMAT = "%d/%m/%Y %H:%M:%S"

BuiltinFactory = Callable[[], object]
Clock = Callable[[tzinfo], datetime]


def _system_clock(tz: tzinfo) -> datetime:
    return datetime.now(tz)


class BuiltinRegistry:
    """Context-free variables such as ``now``, answered without upstream data."""

    def __init__(self) -> None:
        self._factories: dict[str, BuiltinFactory] = {}

    def register(self, name: str, factory: BuiltinFactory) -> None:
        if not name or "." in name or "[" in name:
            raise ValueError(f"Invalid built-in name '{name}'.")
        self._factories[name] = factory

    def unregister(self, name: str) -> None:
        self._factories.pop(name, None)

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def resolve(self, name: str) -> tuple[bool, object]:
        factory = self._factories.get(name)
        if factory is None:
            return False, None
        return True, factory()


def make_now_factory(
    timezone: str | tzinfo = DEFAULT_TIMEZONE,
    *,
    fmt: str = DEFAULT_NOW_FORMAT,
    clock: Clock | None = None,
) -> BuiltinFactory:
    tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
    read_clock = clock or _system_clock

    def _now() -> str:
        return read_clock(tz).astimezone(tz).strftime(fmt)

    return _now


def build_default_registry(
    timezone: str | tzinfo = DEFAULT_TIMEZONE,
    *,
    now_format: str = DEFAULT_NOW_FORMAT,
    clock: Clock | None = None,
) -> BuiltinRegistry:
    registry = BuiltinRegistry()
    registry.register("now", make_now_factory(timezone, fmt=now_format, clock=clock))
    return registry


DEFAULT_BUILTINS = build_default_registry()
