"""
Per-tool option records.

Each tool validates its free-form options payload against one of these
models before a job is created. Payloads may use snake_case or the camelCase
keys the web client sends (``pagesToDelete``); unknown keys are rejected.
The ``tool`` field tags every record so the union can be discriminated.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ToolOptionsBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True)


class MergeOptions(ToolOptionsBase):
    tool: Literal["merge-pdf"] = "merge-pdf"
    keep_bookmarks: bool = True


class PageRange(ToolOptionsBase):
    start: int = 1
    end: int = 1


class SplitOptions(ToolOptionsBase):
    tool: Literal["split-pdf"] = "split-pdf"
    split_type: Literal["all", "range", "specific"] = "all"
    page_range: PageRange = Field(default_factory=PageRange)
    specific_pages: str = ""


class DeletePagesOptions(ToolOptionsBase):
    tool: Literal["delete-pdf-pages"] = "delete-pdf-pages"
    pages_to_delete: str = ""


class RotateOptions(ToolOptionsBase):
    tool: Literal["rotate-pdf"] = "rotate-pdf"
    rotation_angle: Literal[90, 180, 270] = 90
    rotate_all: bool = True
    pages_to_rotate: str = ""


class ReorderOptions(ToolOptionsBase):
    tool: Literal["reorder-pdf"] = "reorder-pdf"
    page_order: List[int] = Field(min_length=1)

    @field_validator("page_order")
    @classmethod
    def _unique_positive(cls, value: List[int]) -> List[int]:
        if any(page < 1 for page in value):
            raise ValueError("page numbers start at 1")
        if len(set(value)) != len(value):
            raise ValueError("page_order lists a page more than once")
        return value


class LockOptions(ToolOptionsBase):
    tool: Literal["lock-pdf"] = "lock-pdf"
    password: str = Field(min_length=1)
    confirm_password: Optional[str] = None

    @model_validator(mode="after")
    def _passwords_match(self) -> LockOptions:
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("passwords do not match")
        return self


class UnlockOptions(ToolOptionsBase):
    tool: Literal["unlock-pdf"] = "unlock-pdf"
    password: str = ""


class MetadataOptions(ToolOptionsBase):
    tool: Literal["edit-pdf-metadata"] = "edit-pdf-metadata"
    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    keywords: Optional[str] = None


class TextExtractionOptions(ToolOptionsBase):
    tool: Literal["pdf-to-txt"] = "pdf-to-txt"


ToolOptions = Annotated[
    Union[
        MergeOptions,
        SplitOptions,
        DeletePagesOptions,
        RotateOptions,
        ReorderOptions,
        LockOptions,
        UnlockOptions,
        MetadataOptions,
        TextExtractionOptions,
    ],
    Field(discriminator="tool"),
]
