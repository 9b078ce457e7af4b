"""
catalog.py

The ordered build-stage catalog every new plot is seeded from.

The built-in catalog can be replaced through configuration with a JSON file
holding a list of {"name": ..., "duration": ...} objects (see config.py).
The order of the list is the order stages are worked in.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from model import StageTemplate

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    """Raised when a stage catalog is empty or malformed."""


# Durations are in work days.
DEFAULT_BUILD_STAGES: Tuple[StageTemplate, ...] = (
    StageTemplate(name="Site Preparation", duration=5),
    StageTemplate(name="Foundations", duration=10),
    StageTemplate(name="Substructure", duration=5),
    StageTemplate(name="Superstructure", duration=20),
    StageTemplate(name="Roof Structure", duration=5),
    StageTemplate(name="Roof Covering", duration=5),
    StageTemplate(name="First Fix", duration=10),
    StageTemplate(name="Plastering", duration=10),
    StageTemplate(name="Second Fix", duration=10),
    StageTemplate(name="Decoration", duration=5),
    StageTemplate(name="Snagging & Handover", duration=5),
)


class _StageTemplateSchema(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    duration: int = Field(..., ge=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("stage name must not be blank")
        return v


_CATALOG_ADAPTER = TypeAdapter(List[_StageTemplateSchema])


def validate_catalog(templates: Sequence[StageTemplate]) -> Tuple[StageTemplate, ...]:
    """
    Check a catalog and return it as an immutable tuple.

    Raises CatalogError if the catalog is empty, a duration is not a positive
    integer, or a stage name is blank or repeated.
    """
    if not templates:
        raise CatalogError("Stage catalog must contain at least one stage.")
    seen = set()
    for template in templates:
        if not template.name.strip():
            raise CatalogError("Stage names must not be blank.")
        if isinstance(template.duration, bool) or not isinstance(template.duration, int) \
                or template.duration < 1:
            raise CatalogError(
                f"Stage '{template.name}' must have a positive integer duration."
            )
        if template.name in seen:
            raise CatalogError(f"Stage '{template.name}' appears more than once.")
        seen.add(template.name)
    return tuple(templates)


def load_catalog(path: Optional[Path] = None) -> Tuple[StageTemplate, ...]:
    """
    Load the stage catalog from a JSON file, or return the built-in one.
    """
    if path is None:
        return DEFAULT_BUILD_STAGES

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"Cannot read stage catalog {path}: {exc}") from exc

    try:
        rows = _CATALOG_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise CatalogError(f"Invalid stage catalog {path}: {exc}") from exc

    catalog = validate_catalog(
        [StageTemplate(name=row.name, duration=row.duration) for row in rows]
    )
    logger.info("Loaded %d stage templates from %s", len(catalog), path)
    return catalog


def total_duration(catalog: Sequence[StageTemplate] = DEFAULT_BUILD_STAGES) -> int:
    """Nominal build length in work days.  Also accepts a plot's stages."""
    return sum(t.duration for t in catalog)
