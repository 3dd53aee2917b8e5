"""In-process HuggingFace ``transformers`` adapter.

The text-generation pipeline is loaded lazily on first use and runs in the
default executor so the event loop is never blocked. ``transformers`` is an
optional dependency: install it with ``pip install modelrelay[huggingface]``.

Configuration:
    - task: Pipeline task (default: text-generation)
    - max_new_tokens: Default output length when options.max_tokens is unset
    - max_context_tokens: Declared context size (default: 2048)
"""

from __future__ import annotations

import asyncio
import importlib.util
import threading
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ..errors import BackendError, BackendUnavailable, DecodeError
from ..observability.logging import get_logger
from ..types import (
    CapabilityDescriptor,
    GenerateOptions,
    Locality,
    ModelResponse,
    TokenUsage,
    estimate_tokens,
)
from .base import ModelProvider
from .factory import register_provider_class

logger = get_logger(__name__)

DEFAULT_HF_MODEL = "Salesforce/codegen-350M-mono"
DEFAULT_MAX_NEW_TOKENS = 128

PipelineFactory = Callable[[str, str], Any]


def _load_pipeline(task: str, model: str) -> Any:
    try:
        from transformers import pipeline
    except ImportError as e:
        raise BackendUnavailable(
            "transformers is required for the huggingface provider. "
            "Install it with: pip install modelrelay[huggingface]",
            provider="huggingface",
            model=model,
            original_error=e,
        ) from e
    return pipeline(task, model=model)


class HuggingFaceProvider(ModelProvider):
    """
    Local generation through a ``transformers`` pipeline.

    A custom ``pipeline_factory(task, model)`` may be injected; it is called
    once, in a worker thread, the first time the provider is used.
    """

    provider_type = "huggingface"

    def __init__(
        self,
        name: str,
        model: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        *,
        pipeline_factory: Optional[PipelineFactory] = None,
    ):
        super().__init__(name, model or DEFAULT_HF_MODEL, config)
        self.task = self.config.get("task", "text-generation")
        self.max_new_tokens = int(self.config.get("max_new_tokens", DEFAULT_MAX_NEW_TOKENS))
        self.max_context_tokens = int(self.config.get("max_context_tokens", 2048))
        self._pipeline_factory = pipeline_factory or _load_pipeline
        self._generator: Any = None
        self._load_lock = asyncio.Lock()

    async def _ensure_loaded(self) -> Any:
        async with self._load_lock:
            if self._generator is None:
                logger.info(f"Loading HuggingFace model {self.model} for '{self.name}'")
                loop = asyncio.get_running_loop()
                self._generator = await loop.run_in_executor(
                    None, self._pipeline_factory, self.task, self.model
                )
        return self._generator

    def _generation_kwargs(self, options: GenerateOptions) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "max_new_tokens": options.max_tokens or self.max_new_tokens,
            "do_sample": options.temperature > 0,
        }
        if options.temperature > 0:
            kwargs["temperature"] = options.temperature
            kwargs["top_p"] = options.top_p if options.top_p is not None else 0.9
        return kwargs

    @staticmethod
    def _full_prompt(prompt: str, options: GenerateOptions) -> str:
        if options.system_prompt:
            return f"{options.system_prompt}\n\n{prompt}"
        return prompt

    async def _generate(self, prompt: str, options: GenerateOptions) -> ModelResponse:
        generator = await self._ensure_loaded()
        full_prompt = self._full_prompt(prompt, options)
        kwargs = self._generation_kwargs(options)

        loop = asyncio.get_running_loop()
        try:
            output = await loop.run_in_executor(None, lambda: generator(full_prompt, **kwargs))
        except Exception as e:
            raise BackendError(
                f"HuggingFace generation failed: {e}",
                provider=self.name,
                model=self.model,
                original_error=e,
            ) from e

        if not isinstance(output, list) or not output or not isinstance(output[0], dict):
            raise DecodeError("HuggingFace pipeline returned no generations", provider=self.name, model=self.model)
        generated = output[0].get("generated_text")
        if not isinstance(generated, str):
            raise DecodeError("HuggingFace generation has no 'generated_text'", provider=self.name, model=self.model)

        text = generated[len(full_prompt):] if generated.startswith(full_prompt) else generated
        return ModelResponse(
            content=text,
            usage=TokenUsage.from_counts(estimate_tokens(full_prompt), estimate_tokens(text)),
            model=self.model,
            provider=self.name,
        )

    def _create_streamer(self, generator: Any) -> Any:
        from transformers import TextIteratorStreamer

        return TextIteratorStreamer(generator.tokenizer, skip_prompt=True, skip_special_tokens=True)

    def _stopping_criteria(self, cancelled: threading.Event) -> Any:
        from transformers import StoppingCriteria, StoppingCriteriaList

        class _Cancelled(StoppingCriteria):
            def __call__(self, input_ids, scores, **kwargs) -> bool:
                return cancelled.is_set()

        return StoppingCriteriaList([_Cancelled()])

    async def _generate_stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[str]:
        generator = await self._ensure_loaded()
        streamer = self._create_streamer(generator)
        full_prompt = self._full_prompt(prompt, options)
        kwargs = self._generation_kwargs(options)
        cancelled = threading.Event()
        kwargs["stopping_criteria"] = self._stopping_criteria(cancelled)
        failures: List[BaseException] = []

        def run() -> None:
            try:
                generator(full_prompt, streamer=streamer, **kwargs)
            except Exception as e:
                failures.append(e)
                streamer.end()

        worker = threading.Thread(target=run, name=f"hf-generate-{self.name}", daemon=True)
        worker.start()

        loop = asyncio.get_running_loop()
        iterator = iter(streamer)
        try:
            while True:
                fragment = await loop.run_in_executor(None, next, iterator, None)
                if fragment is None:
                    break
                if fragment:
                    yield fragment
        finally:
            # An abandoned stream stops the worker at its next decoding step.
            cancelled.set()

        await loop.run_in_executor(None, worker.join)
        if failures:
            raise BackendError(
                f"HuggingFace generation failed: {failures[0]}",
                provider=self.name,
                model=self.model,
                original_error=failures[0],
            )

    async def is_available(self) -> bool:
        if self._generator is not None or self._pipeline_factory is not _load_pipeline:
            return True
        try:
            return importlib.util.find_spec("transformers") is not None
        except (ImportError, ValueError):
            return False

    def describe(self) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            name="HuggingFace",
            locality=Locality.LOCAL,
            requires_auth=False,
            supports_streaming=True,
            supports_tools=False,
            max_context_tokens=self.max_context_tokens,
            model=self.model,
        )


# Register provider
register_provider_class("huggingface", HuggingFaceProvider)


__all__ = ["HuggingFaceProvider"]
