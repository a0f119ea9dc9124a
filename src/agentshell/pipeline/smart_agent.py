"""
Smart agent: an :class:`~agentshell.agent.agent.Agent` wrapped in a :class:`Pipeline`.

Input goes through validation, context enrichment and request logging middleware, then through
the input processors; the agent's reply has its code blocks extracted and, optionally, is
formatted for the terminal.
"""

import logging
from pathlib import Path
from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from agentshell.agent.agent import Agent
from agentshell.core.schema import (
    AgentResponse,
    Usage,
)
from agentshell.pipeline.base import (
    Pipeline,
    PipelineContext,
    Processor,
)
from agentshell.pipeline.processors import (
    CodeBlock,
    CodeExtractionProcessor,
    ContextEnrichment,
    PassthroughProcessor,
    RequestLogger,
    ResponseFormattingProcessor,
    SavedFile,
    TaskPromptProcessor,
    new_session_id,
    validate_input,
)

logger = logging.getLogger(__name__)


class SmartResult(BaseModel):
    """What :meth:`SmartAgent.execute` returns."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    message: str
    code_blocks: List[CodeBlock] = Field(default_factory=list)
    files: List[SavedFile] = Field(default_factory=list)
    tokens: Optional[Usage] = None
    response: AgentResponse
    context: PipelineContext


class SmartAgent(Pipeline):
    """Pipeline with the default middleware and processors around an :class:`Agent`."""

    def __init__(
        self,
        agent: Agent,
        session_id: str | None = None,
        auto_save_code: bool = False,
        output_dir: str | Path | None = None,
        enable_logging: bool = True,
        enable_formatting: bool = True,
        log_file: str | Path | None = None,
        min_input_length: int = 1,
    ):
        super().__init__()
        self.agent = agent
        # Shared by every request this pipeline runs
        self.session_id = session_id or new_session_id()
        self.auto_save_code = auto_save_code
        self.output_dir = Path(output_dir or agent.settings.OUTPUT_DIR)
        self.enable_formatting = enable_formatting
        self.enrichment = ContextEnrichment(
            working_dir=agent.settings.WORKING_DIR, user=agent.settings.USER_NAME
        )
        self.request_logger = RequestLogger(log_file) if enable_logging else None
        self._fallback = PassthroughProcessor()
        self._setup_defaults(min_input_length)

    def _setup_defaults(self, min_input_length: int) -> None:
        self.use(validate_input(min_input_length))
        self.use(self.enrichment)
        if self.request_logger is not None:
            self.use(self.request_logger)
        self.register_processor(TaskPromptProcessor())
        self.register_processor(self._fallback)

    def register_processor(self, processor: Processor) -> "SmartAgent":
        super().register_processor(processor)
        # The pass-through fallback always stays last
        if processor is not self._fallback and self._fallback in self.processors:
            self.processors.remove(self._fallback)
            self.processors.append(self._fallback)
        return self

    async def execute(self, data: str, intelligent: bool | None = None) -> SmartResult:
        """
        Run one request end to end.

        A fresh :class:`PipelineContext` is created per call and discarded afterwards.
        """
        context = PipelineContext(session_id=self.session_id)
        prompt = await self.process(data, context)

        response = await self.agent.chat(prompt, intelligent=intelligent)
        return await self.process_response(response, context)

    async def process_response(
        self, response: AgentResponse, context: PipelineContext
    ) -> SmartResult:
        extractor = CodeExtractionProcessor(
            auto_save=self.auto_save_code, output_dir=self.output_dir
        )
        extracted = await extractor.process(response.message, context)

        message = extracted.text
        if self.enable_formatting:
            formatter = ResponseFormattingProcessor(colors=True, show_metadata=True)
            message = await formatter.process(extracted, context)

        return SmartResult(
            message=message,
            code_blocks=extracted.code_blocks,
            files=extracted.files,
            tokens=response.tokens,
            response=response,
            context=context,
        )

    def enable_auto_save(self, output_dir: str | Path | None = None) -> "SmartAgent":
        self.auto_save_code = True
        if output_dir is not None:
            self.output_dir = Path(output_dir)
        return self

    def disable_auto_save(self) -> "SmartAgent":
        self.auto_save_code = False
        return self

    def save_code(self, code: str, filename: str, language: str = "txt") -> SavedFile:
        """Write *code* to ``output_dir/filename``."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        path.write_text(code, encoding="utf-8")
        logger.info("Saved code to %s", path)
        return SavedFile(path=str(path), language=language, size=len(code))
