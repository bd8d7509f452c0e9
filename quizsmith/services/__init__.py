# Services module

# Quota enforcement
from quizsmith.services.usage_gate import UsageGate, UsageDecision

# Generation steps
from quizsmith.services.text_extraction import (
    TextExtractor,
    ExtractorRegistry,
    default_registry,
)
from quizsmith.services.prompt_composer import PromptComposer, PromptPayload
from quizsmith.services.completion import CompletionInvoker, OpenAICompletionInvoker
from quizsmith.services.response_parser import ResponseParser, QuestionDraft
from quizsmith.services.quiz_persister import QuizPersister, PersistResult

# Orchestration
from quizsmith.services.generation_pipeline import (
    GenerationPipeline,
    GenerationRequest,
    GenerationResult,
    PipelineState,
)
