"""Feature toggle validation for wineport.

Prompt front-ends hand over raw selections as opaque strings or booleans;
this module is the only place that interprets them. Validation has no side
effects, so a bad selection is rejected before anything is installed,
scaffolded or composed.
"""

from enum import StrEnum
from typing import Any, Iterable, Mapping, Optional, TypeVar

from .common import (
    DEFAULT_RUNNER,
    DEPENDENCY_VERBS,
    AudioBackend,
    GraphicsLayer,
    ToggleSet,
    TuningProfile,
)
from .exceptions import ValidationError
from .utils import parse_bool

E = TypeVar("E", bound=StrEnum)

BOOLEAN_TOGGLES = {
    "hud": "hud",
    "async": "async_compile",
    "esync": "esync",
    "fsync": "fsync",
}
CHOICE_TOGGLES = ("graphics", "audio", "runner", "tuning", "dependencies")
TOGGLE_NAMES = tuple(BOOLEAN_TOGGLES) + CHOICE_TOGGLES


def _is_unset(value: Any) -> bool:
    # A cancelled radiolist hands back an empty string
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_choice(name: str, value: Any, enum_cls: type[E]) -> E:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(member.value for member in enum_cls)
    raise ValidationError(name, f"invalid value {value!r} (expected one of: {allowed})")


def _parse_boolean(name: str, value: Any) -> bool:
    try:
        return parse_bool(value)
    except ValueError:
        raise ValidationError(name, f"invalid value {value!r} (expected on/off)") from None


def _parse_tuning(value: Any) -> TuningProfile:
    if isinstance(value, bool):
        return TuningProfile.UNITY if value else TuningProfile.NONE
    return _parse_choice("tuning", value, TuningProfile)


def _parse_runner(value: Any, available_runners: Optional[Iterable[str]]) -> str:
    if not isinstance(value, str):
        raise ValidationError("runner", f"invalid value {value!r}")
    runner = value.strip()
    if runner == DEFAULT_RUNNER:
        return runner
    if "/" in runner or "\\" in runner or runner in (".", ".."):
        raise ValidationError("runner", f"invalid runtime name {runner!r}")
    if available_runners is not None:
        choices = sorted(available_runners)
        if runner not in choices:
            listed = ", ".join([DEFAULT_RUNNER] + choices)
            raise ValidationError(
                "runner", f"unknown runtime {runner!r} (expected one of: {listed})"
            )
    return runner


def _parse_dependencies(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        items = value.replace(",", " ").split()
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise ValidationError("dependencies", f"invalid value {value!r}")

    selected = []
    for item in items:
        if not isinstance(item, str) or item.strip() not in DEPENDENCY_VERBS:
            allowed = ", ".join(DEPENDENCY_VERBS)
            raise ValidationError(
                "dependencies", f"unknown package {item!r} (expected any of: {allowed})"
            )
        selected.append(item.strip())

    # Install order follows the known verb order, duplicates collapse
    return tuple(verb for verb in DEPENDENCY_VERBS if verb in selected)


def validate_toggles(
    raw: Mapping[str, Any],
    available_runners: Optional[Iterable[str]] = None,
) -> ToggleSet:
    """
    Validate raw selections into a ToggleSet.

    Every recognized toggle that is absent or empty takes its default:
    graphics none, HUD off, async off, both sync primitives off, audio
    system default, runner default, tuning none, no dependency packages.

    Args:
        raw: Toggle name to raw value (string, bool, or list for dependencies)
        available_runners: Installed runtime names a runner may select; when
            None, any plain runtime name is accepted

    Returns:
        The validated ToggleSet

    Raises:
        ValidationError: Naming the first unknown toggle or invalid value
    """
    unknown = sorted(set(raw) - set(TOGGLE_NAMES))
    if unknown:
        raise ValidationError(unknown[0], "unknown toggle")

    values: dict[str, Any] = {}

    for name, field in BOOLEAN_TOGGLES.items():
        if not _is_unset(raw.get(name)):
            values[field] = _parse_boolean(name, raw[name])

    if not _is_unset(raw.get("graphics")):
        values["graphics"] = _parse_choice("graphics", raw["graphics"], GraphicsLayer)
    if not _is_unset(raw.get("audio")):
        values["audio"] = _parse_choice("audio", raw["audio"], AudioBackend)
    if not _is_unset(raw.get("runner")):
        values["runner"] = _parse_runner(raw["runner"], available_runners)
    if not _is_unset(raw.get("tuning")):
        values["tuning"] = _parse_tuning(raw["tuning"])
    if not _is_unset(raw.get("dependencies")):
        values["dependencies"] = _parse_dependencies(raw["dependencies"])

    return ToggleSet(**values)
