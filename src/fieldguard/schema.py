from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fieldguard.analysis.model import FileError, Violation


class CheckerOptions(BaseModel):
    """Options a host hands to the checker."""

    model_config = ConfigDict(populate_by_name=True)

    entity_list_file: Optional[str] = Field(default=None, alias="entityListFile")
    structs: List[str] = []

    @field_validator("structs", mode="before")
    @classmethod
    def split_structs(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple, set)):
            out: List[object] = []
            for item in value:
                if isinstance(item, str):
                    out.extend(part.strip() for part in item.split(",") if part.strip())
                else:
                    out.append(item)
            return out
        return value

    @field_validator("entity_list_file", mode="before")
    @classmethod
    def strip_path(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value


class DiagnosticDTO(BaseModel):
    path: str
    line: int
    col: int
    code: str = "FGD001"
    owner: str
    field: str
    message: str

    @classmethod
    def from_violation(cls, path: str, violation: Violation) -> DiagnosticDTO:
        return cls(
            path=path,
            line=violation.position.line,
            col=violation.position.column + 1,
            owner=violation.owner_type,
            field=violation.field_name,
            message=violation.message,
        )


class FileErrorDTO(BaseModel):
    path: str
    line: int
    col: int
    message: str

    @classmethod
    def from_error(cls, error: FileError) -> FileErrorDTO:
        return cls(path=error.path, line=error.line, col=error.column, message=error.message)


class CheckResponse(BaseModel):
    diagnostics: List[DiagnosticDTO] = []
    errors: List[FileErrorDTO] = []
    stats: Dict[str, int] = {}
