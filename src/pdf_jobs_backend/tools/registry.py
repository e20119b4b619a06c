from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Type

from pydantic import ValidationError

from ..artifacts import ArtifactStore
from ..errors import ArtifactNotFound, InvalidOptions, ProcessingError, UnknownTool
from ..models import ToolDescriptor
from .options import ToolOptions, ToolOptionsBase

logger = logging.getLogger(__name__)


class InputArity(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


@dataclass(frozen=True)
class ToolContext:
    """What a handler may touch besides its inputs: its job id and the artifact store."""

    job_id: str
    artifacts: ArtifactStore

    def output_path(self, filename: str) -> Path:
        return self.artifacts.output_path(self.job_id, filename)

    def work_dir(self, name: str = "work") -> Path:
        return self.artifacts.work_dir(self.job_id, name)


ToolFn = Callable[[List[Path], ToolOptions, ToolContext], Path]


@dataclass(frozen=True)
class ToolHandler:
    """
    Capability record for one tool.

    Attributes:
        tool_type: Registry key, e.g. "merge-pdf"
        fn: Transformation; receives resolved input paths in submission
            order and returns the path of the file it wrote
        options_model: Pydantic model validating the tool's options
        input_arity: Whether the tool takes exactly one input or several
        combines_inputs: True if several inputs produce one output in a
            single invocation; False means each input becomes its own job
        run_inline: Run before submit returns instead of on the deferred path
        description: One-line summary for tool listings
    """

    tool_type: str
    fn: ToolFn
    options_model: Type[ToolOptionsBase]
    input_arity: InputArity = InputArity.SINGLE
    combines_inputs: bool = False
    run_inline: bool = False
    description: str = ""

    def parse_options(self, raw: Optional[Mapping[str, Any]]) -> ToolOptionsBase:
        try:
            return self.options_model.model_validate(dict(raw or {}))
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'options'}: {error['msg']}"
                for error in exc.errors()
            )
            raise InvalidOptions(self.tool_type, details) from exc

    def execute(self, input_refs: Sequence[str], options: ToolOptionsBase, ctx: ToolContext) -> str:
        """
        Resolve the input refs, run the transformation and return the output ref.

        Raises:
            ProcessingError: If an input is missing, the arity is violated, the
                transformation did not leave a file behind, or it fails with a
                ProcessingError
        """
        if self.input_arity == InputArity.SINGLE and len(input_refs) != 1:
            raise ProcessingError(f"{self.tool_type} takes exactly one file, got {len(input_refs)}")
        if not input_refs:
            raise ProcessingError(f"{self.tool_type} needs at least one file")

        paths = []
        for ref in input_refs:
            try:
                paths.append(ctx.artifacts.resolve(ref))
            except ArtifactNotFound as exc:
                raise ProcessingError(f"Input file is no longer available: {ref}") from exc

        output = Path(self.fn(paths, options, ctx))
        if not output.is_file():
            raise ProcessingError(f"{self.tool_type} produced no output")
        return ctx.artifacts.ref_for(output)

    def describe(self) -> ToolDescriptor:
        return ToolDescriptor(
            tool_type=self.tool_type,
            input_arity=self.input_arity.value,
            combines_inputs=self.combines_inputs,
            run_inline=self.run_inline,
            description=self.description,
            options_schema=self.options_model.model_json_schema(by_alias=True),
        )


class ToolRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[str, ToolHandler] = {}

    def register(self, handler: ToolHandler) -> None:
        if handler.tool_type in self._handlers:
            raise ValueError(f"tool already registered: {handler.tool_type}")
        self._handlers[handler.tool_type] = handler

    def resolve(self, tool_type: str) -> ToolHandler:
        try:
            return self._handlers[tool_type]
        except KeyError:
            raise UnknownTool(tool_type) from None

    def validate_options(self, tool_type: str, raw: Optional[Mapping[str, Any]]) -> ToolOptionsBase:
        return self.resolve(tool_type).parse_options(raw)

    def describe(self) -> List[ToolDescriptor]:
        return [handler.describe() for handler in self]

    def __contains__(self, tool_type: object) -> bool:
        return tool_type in self._handlers

    def __iter__(self) -> Iterator[ToolHandler]:
        return iter(self._handlers.values())

    def __len__(self) -> int:
        return len(self._handlers)
