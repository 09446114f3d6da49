from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

import orjson
from pydantic import BaseModel, Field, ValidationError

from ..errors import ConfigurationError
from ..schemas import ConfigurationDimension, ScenarioDescriptor
from ..utils import read_json, stable_hash
from .builder import ArgumentTemplate, MatrixPlan, build_matrix


class MatrixDefinition(BaseModel):
    command: List[str]
    cwd: Optional[str] = None
    constant_args: List[str] = Field(default_factory=list)
    selector_args: List[str] = Field(default_factory=lambda: ["--select", "{reference}"])
    key_prefix: str = ""
    primary_dimension: Optional[str] = None
    dimensions: List[ConfigurationDimension] = Field(default_factory=list)
    scenarios: List[ScenarioDescriptor] = Field(default_factory=list)

    def template(self) -> ArgumentTemplate:
        return ArgumentTemplate(
            constant_args=tuple(self.constant_args),
            selector_args=tuple(self.selector_args),
            key_prefix=self.key_prefix,
        )

    def build_plan(self) -> MatrixPlan:
        return build_matrix(
            self.scenarios,
            self.dimensions,
            self.template(),
            primary_dimension=self.primary_dimension,
        )

    def resolved_command(self, base_dir: Path) -> List[str]:
        # Only the known tokens are substituted; other braces pass through untouched.
        resolved: List[str] = []
        for part in self.command:
            part = part.replace("{python}", sys.executable)
            resolved.append(part.replace("{matrix_dir}", str(base_dir)))
        return resolved

    def resolved_cwd(self, base_dir: Path) -> Optional[Path]:
        if self.cwd is None:
            return None
        path = Path(self.cwd)
        return path if path.is_absolute() else base_dir / path

    def definition_hash(self) -> str:
        return stable_hash(self.model_dump(mode="json"))


def load_matrix(path: Path) -> MatrixDefinition:
    try:
        data = read_json(path)
    except (OSError, orjson.JSONDecodeError) as exc:
        raise ConfigurationError("INVALID_MATRIX", f"cannot read {path}: {exc}") from exc
    try:
        definition = MatrixDefinition(**data)
    except (TypeError, ValidationError) as exc:
        raise ConfigurationError("INVALID_MATRIX", f"{path}: {exc}") from exc
    if not definition.command:
        raise ConfigurationError("INVALID_MATRIX", f"{path}: command must not be empty")
    return definition
