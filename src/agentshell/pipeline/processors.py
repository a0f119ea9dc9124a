"""Pre-built middleware and processors for common pipeline tasks."""

import json
import logging
import re
import uuid
from collections import deque
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    List,
    Optional,
    Set,
)

from pydantic import (
    BaseModel,
    Field,
)

from agentshell.common import (
    AnsiColors,
    colorize,
    truncate,
)
from agentshell.pipeline.base import (
    PipelineContext,
    Processor,
)

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return f"session_{int(datetime.now(timezone.utc).timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------
class InputValidationError(ValueError):
    """Raised by :func:`validate_input` for unusable input."""


def validate_input(min_length: int = 1) -> Callable[[Any, PipelineContext], str]:
    """Middleware rejecting non-string input or text shorter than *min_length*."""

    def middleware(data: Any, context: PipelineContext) -> str:
        if not isinstance(data, str):
            raise InputValidationError("Input must be a string")
        text = data.strip()
        if not text:
            raise InputValidationError("Input cannot be empty")
        if len(text) < min_length:
            raise InputValidationError(
                f"Input is too short ({len(text)} < {min_length} characters)"
            )
        return text

    return middleware


class ContextEnrichment:
    """
    Middleware stamping the context with time, session and environment details.

    The working directory and user name are injected at construction; nothing is read from the
    process environment here.
    """

    def __init__(self, working_dir: str | None = None, user: str | None = None):
        self.working_dir = working_dir
        self.user = user
        self._request_counts: Dict[str, int] = {}

    def __call__(self, data: Any, context: PipelineContext) -> Any:
        now = datetime.now(timezone.utc)
        context.timestamp = now.timestamp()
        context.started_at = now.isoformat()
        if not context.session_id:
            context.session_id = new_session_id()

        count = self._request_counts.get(context.session_id, 0) + 1
        self._request_counts[context.session_id] = count
        context.request_count = count
        context.working_dir = self.working_dir
        context.user = self.user or "unknown"
        return data

    def session_stats(self, session_id: str) -> Dict[str, int]:
        return {"request_count": self._request_counts.get(session_id, 0)}


class RequestLogger:
    """Middleware that logs every request and keeps the most recent entries."""

    def __init__(self, log_file: str | Path | None = None, max_entries: int = 100):
        self.log_file = Path(log_file) if log_file else None
        self._entries: Deque[Dict[str, Any]] = deque(maxlen=max_entries)

    def __call__(self, data: Any, context: PipelineContext) -> Any:
        text = data if isinstance(data, str) else json.dumps(data, default=str)
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": context.session_id,
            "input": truncate(text),
            "context": {"request_count": context.request_count, "user": context.user},
        }
        self._entries.append(entry)
        logger.info("Request #%d: %s", context.request_count, entry["input"])

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        return data

    def get_logs(self, limit: int = 10) -> List[Dict[str, Any]]:
        return list(self._entries)[-limit:]


# ---------------------------------------------------------------------------
# Input processors
# ---------------------------------------------------------------------------
class TaskPromptProcessor(Processor):
    """Asks for a complete implementation when the user wants code written."""

    HINT = "Please provide a complete code implementation."
    _TRIGGER_RE = re.compile(r"\b(?:write|generate|create)\b|写|生成|创建", re.IGNORECASE)

    def can_handle(self, data: Any, context: PipelineContext) -> bool:
        return isinstance(data, str) and bool(self._TRIGGER_RE.search(data))

    async def process(self, data: Any, context: PipelineContext) -> Any:
        if self.HINT in data:
            return data
        return f"{data.rstrip('.')}. {self.HINT}"


class PassthroughProcessor(Processor):
    """Fallback returning the (middleware-transformed) input unchanged."""

    async def process(self, data: Any, context: PipelineContext) -> Any:
        return data


# ---------------------------------------------------------------------------
# Output processors
# ---------------------------------------------------------------------------
class CodeBlock(BaseModel):
    language: str = "text"
    code: str
    filename: Optional[str] = None


class SavedFile(BaseModel):
    path: str
    language: str
    size: int


class ExtractedResponse(BaseModel):
    """Model output split into prose and fenced code blocks."""

    has_code: bool = False
    text: str = ""
    code_blocks: List[CodeBlock] = Field(default_factory=list)
    files: List[SavedFile] = Field(default_factory=list)


_EXTENSIONS = {
    "javascript": "js",
    "typescript": "ts",
    "python": "py",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "go": "go",
    "rust": "rs",
    "ruby": "rb",
    "php": "php",
    "html": "html",
    "css": "css",
    "json": "json",
    "yaml": "yml",
    "markdown": "md",
    "bash": "sh",
    "shell": "sh",
}


class CodeExtractionProcessor(Processor):
    """Extracts fenced code blocks from model output and optionally saves them."""

    _BLOCK_RE = re.compile(r"```(\w+)?\n(.*?)```", re.DOTALL)
    _CLASS_RE = re.compile(r"class\s+(\w+)")
    _FUNCTION_RE = re.compile(r"(?:function|const|let|var|def)\s+(\w+)")

    def __init__(self, auto_save: bool = False, output_dir: str | Path = "./output"):
        self.auto_save = auto_save
        self.output_dir = Path(output_dir)

    async def process(self, data: Any, context: PipelineContext) -> ExtractedResponse:
        text = data if isinstance(data, str) else str(data)
        blocks = self.extract_code_blocks(text)
        if not blocks:
            return ExtractedResponse(has_code=False, text=text)

        result = ExtractedResponse(has_code=True, text=text, code_blocks=blocks)
        if self.auto_save:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            taken: Set[str] = set()
            for block in blocks:
                filename = self.unique_filename(
                    block.filename or self.suggest_filename(block.language, block.code), taken
                )
                block.filename = filename
                path = self.output_dir / filename
                path.write_text(block.code, encoding="utf-8")
                logger.info("Saved %s code block to %s", block.language, path)
                result.files.append(
                    SavedFile(path=str(path), language=block.language, size=len(block.code))
                )
        return result

    def extract_code_blocks(self, text: str) -> List[CodeBlock]:
        return [
            CodeBlock(
                language=match.group(1) or "text",
                code=match.group(2).strip(),
                filename=self.suggest_filename(match.group(1), match.group(2)),
            )
            for match in self._BLOCK_RE.finditer(text)
        ]

    def suggest_filename(self, language: str | None, code: str) -> str:
        """Name the file after the first class, else the first function, else ``code``."""
        class_match = self._CLASS_RE.search(code)
        function_match = self._FUNCTION_RE.search(code)
        if class_match:
            name = class_match.group(1)
        elif function_match:
            name = function_match.group(1)
        else:
            name = "code"
        return f"{name}.{self.get_extension(language)}"

    @staticmethod
    def unique_filename(filename: str, taken: Set[str]) -> str:
        """Suffix ``_1``, ``_2``, ... before the extension until *filename* is not in *taken*."""
        stem, dot, extension = filename.rpartition(".")
        if not dot:
            stem, extension = filename, ""
        candidate, counter = filename, 1
        while candidate in taken:
            candidate = f"{stem}_{counter}{dot}{extension}"
            counter += 1
        taken.add(candidate)
        return candidate

    @staticmethod
    def get_extension(language: str | None) -> str:
        return _EXTENSIONS.get((language or "").lower(), "txt")


class ResponseFormattingProcessor(Processor):
    """Terminal highlighting for model output and a summary of extracted code."""

    _BULLET_RE = re.compile(r"^(\s*)[-*]\s")

    def __init__(self, colors: bool = True, show_metadata: bool = True):
        self.colors = colors
        self.show_metadata = show_metadata

    def _color(self, text: str, color: AnsiColors, bold: bool = False) -> str:
        return colorize(text, color, bold) if self.colors else text

    async def process(self, data: Any, context: PipelineContext) -> str:
        if isinstance(data, ExtractedResponse):
            if data.has_code:
                return self.format_code_response(data)
            return self.format_text(data.text)
        return self.format_text(str(data))

    def format_text(self, text: str) -> str:
        lines = []
        for line in text.split("\n"):
            if line.startswith("```"):
                line = self._color(line, AnsiColors.CYAN)
            elif line.startswith("#"):
                line = self._color(line, AnsiColors.YELLOW, bold=True)
            else:
                bullet = self._BULLET_RE.match(line)
                if bullet:
                    rest = line[bullet.end() :]
                    line = f"{bullet.group(1)}{self._color('•', AnsiColors.GREEN)} {rest}"
            lines.append(line)
        return "\n".join(lines)

    def format_code_response(self, response: ExtractedResponse) -> str:
        output = self.format_text(response.text)
        if not self.show_metadata or not response.code_blocks:
            return output

        output += "\n\n" + self._color("━" * 50, AnsiColors.BLUE)
        output += "\n" + self._color(
            f"📝 Found {len(response.code_blocks)} code block(s)", AnsiColors.BLUE, bold=True
        )
        for index, block in enumerate(response.code_blocks, start=1):
            output += f"\n  {index}. {block.language} ({len(block.code)} chars)"
            if block.filename:
                output += f" → {block.filename}"

        if response.files:
            output += "\n\n" + self._color("✅ Saved files:", AnsiColors.GREEN, bold=True)
            for saved in response.files:
                output += f"\n  📄 {saved.path}"
        return output
