"""Controller-to-keyboard mapping files for the input mapper."""

import logging
from pathlib import Path
from typing import Mapping

from .common import BUTTONS
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

ControlMapping = dict[str, str]


def default_mapping() -> ControlMapping:
    """Every button present and unassigned."""
    return {button: "" for button in BUTTONS}


def validate_mapping(raw: Mapping[str, str]) -> ControlMapping:
    """
    Check a mapping covers exactly the known buttons.

    Values are trimmed; an empty value leaves the button unassigned.

    Raises:
        ValidationError: Naming the first missing or unknown button, or a
            value that cannot be written to the mapping file
    """
    unknown = sorted(set(raw) - set(BUTTONS))
    if unknown:
        raise ValidationError(unknown[0], "unknown button")

    mapping: ControlMapping = {}
    for button in BUTTONS:
        if button not in raw:
            raise ValidationError(button, "button has no assignment")
        value = raw[button]
        if not isinstance(value, str):
            raise ValidationError(button, f"invalid key {value!r}")
        value = value.strip()
        if '"' in value or "\n" in value:
            raise ValidationError(button, f"invalid key {value!r}")
        mapping[button] = value
    return mapping


def render_mapping(mapping: Mapping[str, str]) -> str:
    return "".join(f'{button} = "{mapping[button]}"\n' for button in BUTTONS)


def write_mapping(mapping: Mapping[str, str], path: Path) -> Path:
    """Validate and write a mapping file, one ``name = "key"`` line per button."""
    content = render_mapping(validate_mapping(mapping))
    path.write_text(content, encoding="utf-8")
    logger.info(f"Wrote control mapping to {path}")
    return path
