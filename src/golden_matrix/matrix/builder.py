from __future__ import annotations

import re
import string
from dataclasses import dataclass
from itertools import product
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from ..errors import ConfigurationError
from ..schemas import (
    ConfigurationDimension,
    DimensionValue,
    InvocationDescriptor,
    ScenarioDescriptor,
)

DEFAULT_GROUP = "default"
_UNSAFE = re.compile(r"[^a-z0-9._-]+")
_PLACEHOLDERS = ("reference", "qualified_name", "group", "name")


class ArgumentTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    constant_args: Tuple[str, ...] = ()
    selector_args: Tuple[str, ...] = ("--select", "{reference}")
    key_prefix: str = ""


def normalize_segment(text: str) -> str:
    segment = _UNSAFE.sub("-", text.strip().lower()).strip("-")
    if not segment or set(segment) == {"."}:
        raise ConfigurationError(
            "UNSAFE_KEY_SEGMENT", f"`{text}` does not normalize to a usable path segment"
        )
    return segment


def _normalize_prefix(prefix: str) -> List[str]:
    return [normalize_segment(part) for part in prefix.split("/") if part.strip()]


def _render_selector(template: ArgumentTemplate, scenario: ScenarioDescriptor) -> List[str]:
    fields = {
        "reference": scenario.reference or scenario.qualified_name,
        "qualified_name": scenario.qualified_name,
        "group": scenario.group_name,
        "name": scenario.scenario_name,
    }
    rendered: List[str] = []
    for arg in template.selector_args:
        for _, field_name, _, _ in string.Formatter().parse(arg):
            if field_name is not None and field_name not in _PLACEHOLDERS:
                raise ConfigurationError(
                    "UNKNOWN_PLACEHOLDER",
                    f"selector argument `{arg}` uses unknown placeholder `{field_name}`",
                )
        rendered.append(arg.format(**fields))
    return rendered


def _check_dimensions(dimensions: Sequence[ConfigurationDimension]) -> None:
    seen_dimensions: Dict[str, str] = {}
    for dimension in dimensions:
        key = normalize_segment(dimension.name)
        if key in seen_dimensions:
            raise ConfigurationError(
                "DUPLICATE_DIMENSION",
                f"dimensions `{seen_dimensions[key]}` and `{dimension.name}` collide",
            )
        seen_dimensions[key] = dimension.name
        if not dimension.values:
            raise ConfigurationError(
                "EMPTY_DIMENSION", f"dimension `{dimension.name}` has no values"
            )
        seen_values: Dict[str, str] = {}
        for value in dimension.values:
            value_key = normalize_segment(value.name)
            if value_key in seen_values:
                raise ConfigurationError(
                    "DUPLICATE_DIMENSION_VALUE",
                    f"dimension `{dimension.name}` values `{seen_values[value_key]}` "
                    f"and `{value.name}` collide",
                )
            seen_values[value_key] = value.name


@dataclass(frozen=True)
class MatrixPlan:
    cells: Tuple[InvocationDescriptor, ...]
    primary_dimension: Optional[str]
    primary_order: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[InvocationDescriptor]:
        return iter(self.cells)

    def groups(self) -> List[Tuple[str, List[InvocationDescriptor]]]:
        buckets: Dict[str, List[InvocationDescriptor]] = {name: [] for name in self.primary_order}
        for cell in self.cells:
            buckets.setdefault(cell.primary_value, []).append(cell)
        return [(name, cells) for name, cells in buckets.items() if cells]


def build_matrix(
    scenarios: Sequence[ScenarioDescriptor],
    dimensions: Sequence[ConfigurationDimension],
    template: Optional[ArgumentTemplate] = None,
    primary_dimension: Optional[str] = None,
) -> MatrixPlan:
    template = template or ArgumentTemplate()
    if not scenarios:
        raise ConfigurationError("NO_SCENARIOS", "no scenarios discovered")
    _check_dimensions(dimensions)
    primary_index: Optional[int] = None
    if primary_dimension is not None:
        names = [dimension.name for dimension in dimensions]
        if primary_dimension not in names:
            raise ConfigurationError(
                "UNKNOWN_PRIMARY_DIMENSION",
                f"primary dimension `{primary_dimension}` is not one of {names}",
            )
        primary_index = names.index(primary_dimension)
    elif dimensions:
        primary_index = 0
    prefix = _normalize_prefix(template.key_prefix)

    cells: List[InvocationDescriptor] = []
    owners: Dict[str, str] = {}
    for scenario in scenarios:
        group = normalize_segment(scenario.group_name or DEFAULT_GROUP)
        name = normalize_segment(scenario.scenario_name)
        selector = _render_selector(template, scenario)
        for combo in product(*[dimension.values for dimension in dimensions]):
            chosen: Tuple[DimensionValue, ...] = tuple(combo)
            key_stem = "-".join([name] + [normalize_segment(value.name) for value in chosen])
            resource_key = "/".join(prefix + [group, key_stem])
            owner = f"{scenario.qualified_name}{[value.name for value in chosen]}"
            if resource_key in owners:
                raise ConfigurationError(
                    "DUPLICATE_RESOURCE_KEY",
                    f"resource key `{resource_key}` produced by both {owners[resource_key]} "
                    f"and {owner}",
                )
            owners[resource_key] = owner
            argv: List[str] = list(template.constant_args)
            for value in chosen:
                argv.extend(value.args)
            argv.extend(selector)
            distinguishing = [
                value.name for idx, value in enumerate(chosen) if idx != primary_index
            ]
            label = " ".join([scenario.label] + distinguishing)
            cells.append(
                InvocationDescriptor(
                    scenario=scenario,
                    values=tuple(
                        (dimension.name, value.name) for dimension, value in zip(dimensions, chosen)
                    ),
                    argv=tuple(argv),
                    label=label,
                    resource_key=resource_key,
                    primary_value="" if primary_index is None else chosen[primary_index].name,
                )
            )
    primary_order: Tuple[str, ...] = ()
    if primary_index is not None:
        primary_order = tuple(value.name for value in dimensions[primary_index].values)
    return MatrixPlan(
        cells=tuple(cells),
        primary_dimension=None if primary_index is None else dimensions[primary_index].name,
        primary_order=primary_order,
    )
