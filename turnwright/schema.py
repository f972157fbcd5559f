"""Action models and validation for parsed model replies."""

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from turnwright.constants import ALL_TESTS


class FileRef(BaseModel):
    """A file named by the model, optionally with its full new content."""

    path: str
    content: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_aliases(cls, data: Any) -> Any:
        if isinstance(data, dict) and "path" not in data:
            for alias in ("file_path", "file_name"):
                if alias in data:
                    return {**data, "path": data[alias]}
        return data


class FileTags(BaseModel):
    """Descriptive tags stored with a written file."""

    model_config = {"extra": "forbid"}

    primary: list[str] = Field(default_factory=list)
    technical: list[str] = Field(default_factory=list)
    domain: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)

    def as_dict(self) -> dict[str, list[str]]:
        return {k: v for k, v in self.model_dump().items() if v}


class FileAction(BaseModel):
    """One file mutation inside a multi-file task."""

    action: Literal["create_file", "update_file", "delete_file", "noop"]
    file: FileRef
    tags: Optional[FileTags] = None
    is_last_file: bool = False

    @model_validator(mode="before")
    @classmethod
    def _noop_without_file(cls, data: Any) -> Any:
        # the end-of-task signal may omit file entirely
        if isinstance(data, dict) and data.get("action") == "noop" and data.get("file") is None:
            return {**data, "file": {"path": ""}}
        return data

    @model_validator(mode="after")
    def _require_path(self) -> "FileAction":
        # noop carries {"path": ""} as the end-of-task signal
        if self.action != "noop" and not self.file.path.strip():
            raise ValueError("file.path must be a non-empty string")
        return self

    @property
    def is_terminal_noop(self) -> bool:
        return self.action == "noop" and self.is_last_file


class Plan(BaseModel):
    description: str = ""
    files_to_modify: list[str] = Field(min_length=1)

    @field_validator("files_to_modify")
    @classmethod
    def _non_empty_paths(cls, value: list[str]) -> list[str]:
        if any(not p.strip() for p in value):
            raise ValueError("files_to_modify entries must be non-empty paths")
        return value


class ToolArgs(BaseModel):
    path: Optional[str] = None
    paths: Optional[list[str]] = None


class ToolCall(BaseModel):
    function_name: Literal["list_files", "read_file"]
    args: ToolArgs

    @model_validator(mode="after")
    def _read_needs_paths(self) -> "ToolCall":
        if self.function_name == "read_file" and not (self.args.path or self.args.paths):
            raise ValueError("read_file requires args.path or args.paths")
        return self

    def requested_paths(self) -> list[str]:
        """Paths to read, batch form first."""
        if self.args.paths:
            return list(self.args.paths)
        if self.args.path:
            return [self.args.path]
        return []


class _ActionModel(BaseModel):
    message: Optional[str] = None


class TextResponse(_ActionModel):
    action: Literal["text_response"]
    text_response: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_aliases(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("text_response"):
            for alias in ("text", "response_text"):
                if isinstance(data.get(alias), str):
                    return {**data, "text_response": data[alias]}
        return data


class ToolCallAction(_ActionModel):
    action: Literal["tool_call"]
    tool_call: ToolCall


class StartMultiFile(_ActionModel):
    action: Literal["start_multi_file"]
    plan: Plan
    first_file: FileAction


class ContinueMultiFile(_ActionModel):
    action: Literal["continue_multi_file"]
    next_file: FileAction


class RunTest(_ActionModel):
    action: Literal["run_test"]
    file: Optional[Union[FileRef, str]] = None

    @field_validator("file")
    @classmethod
    def _non_empty_target(cls, value):
        path = value.path if isinstance(value, FileRef) else value
        if path is not None and not path.strip():
            raise ValueError("file.path must be a non-empty string")
        return value

    def target(self) -> str:
        """Path of the test file to run, or the all-tests sentinel."""
        path = self.file.path if isinstance(self.file, FileRef) else self.file
        return path.strip() if path and path.strip() else ALL_TESTS


@dataclass
class InvalidAction:
    """A reply whose action cannot be dispatched."""

    action: str
    reason: str = ""


Action = Union[TextResponse, ToolCallAction, StartMultiFile, ContinueMultiFile, RunTest, InvalidAction]

ACTION_TYPES = (TextResponse, ToolCallAction, StartMultiFile, ContinueMultiFile, RunTest, InvalidAction)

ResponsePayload = Annotated[
    Union[TextResponse, ToolCallAction, StartMultiFile, ContinueMultiFile, RunTest],
    Field(discriminator="action"),
]

_ADAPTER = TypeAdapter(ResponsePayload)


@dataclass
class ValidationReport:
    """Validation errors for a payload plus the action to dispatch anyway."""

    action: Action
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def format_errors(exc: ValidationError) -> list[str]:
    """Render pydantic errors as ``location: message`` lines."""
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        lines.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return lines


def validate_payload(payload: dict[str, Any]) -> ValidationReport:
    """Validate a parsed payload against the action schema.

    A failing payload is still decoded structurally when the handler has what
    it needs (for example a start_multi_file with a plan and first_file).

    Args:
        payload: JSON object produced by the response parser

    Returns:
        ValidationReport with the action and any schema errors
    """
    try:
        return ValidationReport(action=_ADAPTER.validate_python(payload))
    except ValidationError as e:
        return ValidationReport(action=decode_structural(payload), errors=format_errors(e))


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _str_list(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, str) and item.strip()]


def _file_ref(value: Any) -> FileRef:
    if isinstance(value, str):
        return FileRef.model_construct(path=value, content=None)
    if not isinstance(value, dict):
        return FileRef.model_construct(path="", content=None)
    path = value.get("path") or value.get("file_path") or value.get("file_name") or ""
    return FileRef.model_construct(path=str(path), content=_text(value.get("content")))


def _file_action(value: Any) -> Optional[FileAction]:
    if not isinstance(value, dict):
        return None
    try:
        tags = FileTags.model_validate(value["tags"]) if value.get("tags") else None
    except ValidationError:
        tags = None
    return FileAction.model_construct(
        action=str(value.get("action") or ""),
        file=_file_ref(value.get("file")),
        tags=tags,
        is_last_file=bool(value.get("is_last_file")),
    )


def decode_structural(payload: dict[str, Any]) -> Action:
    """Build an action from a payload that failed validation.

    Args:
        payload: JSON object produced by the response parser

    Returns:
        The best-effort action, or InvalidAction when required parts are missing
    """
    name = payload.get("action")
    message = _text(payload.get("message"))

    if name == "text_response":
        text = (
            _text(payload.get("text_response"))
            or _text(payload.get("text"))
            or _text(payload.get("response_text"))
        )
        return TextResponse.model_construct(action=name, text_response=text, message=message)

    if name == "tool_call":
        call = payload.get("tool_call")
        if not isinstance(call, dict) or not call.get("function_name"):
            return InvalidAction(name, "tool_call.function_name is missing")
        args = call.get("args") if isinstance(call.get("args"), dict) else {}
        return ToolCallAction.model_construct(
            action=name,
            message=message,
            tool_call=ToolCall.model_construct(
                function_name=str(call["function_name"]),
                args=ToolArgs.model_construct(
                    path=_text(args.get("path")), paths=_str_list(args.get("paths"))
                ),
            ),
        )

    if name == "start_multi_file":
        plan = payload.get("plan")
        first = _file_action(payload.get("first_file"))
        if not isinstance(plan, dict) or first is None:
            return InvalidAction(name, "start_multi_file needs plan and first_file")
        return StartMultiFile.model_construct(
            action=name,
            message=message,
            plan=Plan.model_construct(
                description=_text(plan.get("description")) or "",
                files_to_modify=_str_list(plan.get("files_to_modify")) or [],
            ),
            first_file=first,
        )

    if name == "continue_multi_file":
        next_file = _file_action(payload.get("next_file"))
        if next_file is None:
            return InvalidAction(name, "continue_multi_file needs next_file")
        return ContinueMultiFile.model_construct(action=name, message=message, next_file=next_file)

    if name == "run_test":
        target = payload.get("file")
        if isinstance(target, dict):
            target = _file_ref(target)
        elif not isinstance(target, str):
            target = None
        return RunTest.model_construct(action=name, message=message, file=target)

    return InvalidAction(str(name) if name else "(missing)", "unknown action")
