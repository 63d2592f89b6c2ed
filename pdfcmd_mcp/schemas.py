from pydantic import BaseModel, Field


class ExecutionResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = Field(default=None, description="Exit code; None until a process has run")
    executed: bool = False
    error: str = Field(default="", description="Internal error message or stderr summary")


class EnvStatus(BaseModel):
    service_url: str
    default_timeout: float | None = None
    escape_args: bool
    locale: str | None = None
    platform: str
    path_rewriting: bool = Field(description="Whether absolute Windows paths get rewritten")
    max_output_bytes: int | None = None


class CommandPreview(BaseModel):
    command: str | None
    args: list[str]
    exec_command: str
    remote_target: str | None = Field(default=None, description="URL captured from inputArg, if any")


class RenderReport(BaseModel):
    source: str
    endpoint: str
    output_path: str
    size_bytes: int
    options: str
    duration_seconds: float | None = None
