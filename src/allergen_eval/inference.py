"""
Inference collaborator: prompt, backend interface, response parsing, runner.

Backends return a metadata-prefixed string:

    TTFT_MS=<int>;ITPS=<int>;OTPS=<int>;OET_MS=<int>|<output>

where <output> is a comma-separated allergen list, EMPTY, or an ERROR_<CODE>
marker.
"""

import logging
import time
import tracemalloc
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psutil

from .types import NOT_MEASURED, FoodItem, InferenceTelemetry, PredictionRecord
from .vocab import ALLERGENS, AllergenSet, format_allergens, normalize_allergens, to_vocabulary

logger = logging.getLogger(__name__)

ERROR_PREFIX = "ERROR_"
TOKENIZER_ARTIFACTS = ("Ġ",)
META_KEYS = {
    'TTFT_MS': 'ttft_ms',
    'ITPS': 'itps',
    'OTPS': 'otps',
    'OET_MS': 'oet_ms',
}


class InferenceError(RuntimeError):
    """Backend call failed or returned an error payload."""


def build_prompt(ingredients: str) -> str:
    """Instruction prompt for one food item."""
    return (
        "Analyze these ingredients and identify allergens.\n\n"
        f"Ingredients: {ingredients}\n\n"
        f"Allowed allergens: {', '.join(ALLERGENS)}\n\n"
        "Output format: List only the allergens found as comma-separated values "
        "(e.g., \"milk,egg,wheat\"). If no allergens are found, output \"EMPTY\". "
        "Do not include explanations or extra text.\n\n"
        "Allergens:"
    )


def format_response(output: str, ttft_ms: int = NOT_MEASURED, itps: int = NOT_MEASURED,
                    otps: int = NOT_MEASURED, oet_ms: int = NOT_MEASURED) -> str:
    """Inverse of parse_response()."""
    return f"TTFT_MS={ttft_ms};ITPS={itps};OTPS={otps};OET_MS={oet_ms}|{output}"


@dataclass
class ParsedResponse:
    output: str = ""
    ttft_ms: int = NOT_MEASURED
    itps: int = NOT_MEASURED
    otps: int = NOT_MEASURED
    oet_ms: int = NOT_MEASURED
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return NOT_MEASURED


def parse_response(raw: str) -> ParsedResponse:
    """
    Split backend output into timing metadata and model output.

    A response without '|' is treated as bare output. Unparsable metadata
    values become -1. ERROR_MODEL_LOAD_FAILED -> error "MODEL LOAD FAILED".
    """
    if '|' in raw:
        meta, output = raw.split('|', 1)
    else:
        meta, output = '', raw

    parsed = ParsedResponse(output=output.strip())
    for part in meta.split(';'):
        key, sep, value = part.partition('=')
        attr = META_KEYS.get(key.strip())
        if sep and attr:
            setattr(parsed, attr, _parse_int(value))

    if parsed.output.startswith(ERROR_PREFIX):
        parsed.error = parsed.output[len(ERROR_PREFIX):].replace('_', ' ').strip()
    return parsed


def extract_allergens(output: str) -> AllergenSet:
    """Clean raw model output into a vocabulary-restricted set."""
    cleaned = output
    for artifact in TOKENIZER_ARTIFACTS:
        cleaned = cleaned.replace(artifact, '')
    return to_vocabulary(normalize_allergens(cleaned))


class InferenceBackend(ABC):
    """Runs one prompt against one model."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def infer(self, prompt: str, model: str) -> str:
        """Return the metadata-prefixed response; raise InferenceError on failure."""

    def native_heap_kb(self) -> int:
        """Native allocator usage, for backends that can see it."""
        return NOT_MEASURED


class OpenAICompatibleBackend(InferenceBackend):
    """
    Streaming chat completions against an OpenAI-compatible server
    (llama.cpp server, Ollama).

    TTFT is measured to the first content chunk; OTPS counts streamed chunks
    over generation time; ITPS needs prompt token usage from the server.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080/v1",
        api_key: str = "not-needed",
        temperature: float = 0.0,
        max_tokens: int = 64,
        timeout: float = 120.0,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

    @property
    def name(self) -> str:
        return f"openai-compatible@{self.base_url}"

    def _get_client(self):
        """OpenAI client (lazy init)"""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                timeout=self.timeout,
            )
        return self._client

    def infer(self, prompt: str, model: str) -> str:
        client = self._get_client()
        start = time.perf_counter()
        first_token_at = None
        pieces: List[str] = []
        prompt_tokens = None

        try:
            stream = client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )
            for chunk in stream:
                usage = getattr(chunk, 'usage', None)
                if usage is not None and usage.prompt_tokens is not None:
                    prompt_tokens = usage.prompt_tokens
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    if first_token_at is None:
                        first_token_at = time.perf_counter()
                    pieces.append(delta)
        except Exception as e:
            raise InferenceError(f"{self.name}: {e}") from e

        end = time.perf_counter()
        if first_token_at is None:
            return format_response("EMPTY")

        ttft_ms = int((first_token_at - start) * 1000)
        oet_ms = int((end - first_token_at) * 1000)
        otps = len(pieces) * 1000 // oet_ms if oet_ms > 0 else NOT_MEASURED
        itps = prompt_tokens * 1000 // ttft_ms if prompt_tokens and ttft_ms > 0 else NOT_MEASURED
        return format_response(''.join(pieces), ttft_ms=ttft_ms, itps=itps, otps=otps, oet_ms=oet_ms)


def _managed_heap_kb() -> int:
    current, _peak = tracemalloc.get_traced_memory()
    return current // 1024


def _resident_kb() -> int:
    return psutil.Process().memory_info().rss // 1024


@dataclass
class RunSummary:
    """Outcome of one prediction run."""
    model_name: str
    dataset_number: int
    records: List[PredictionRecord] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)  # (item id, message)
    saved: int = 0
    elapsed_s: float = 0.0

    @property
    def attempted(self) -> int:
        return len(self.records) + len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_name': self.model_name,
            'dataset_number': self.dataset_number,
            'predicted': len(self.records),
            'failed': len(self.failures),
            'failures': [{'id': i, 'message': m} for i, m in self.failures],
            'saved': self.saved,
            'elapsed_s': round(self.elapsed_s, 2),
        }


class PredictionRunner:
    """
    Runs food items through a backend and turns responses into records.

    Memory telemetry is the after-minus-before delta around each call:
    tracemalloc for the interpreter heap, psutil RSS for the process total.
    """

    def __init__(self, backend: InferenceBackend, store=None, verbose: bool = True):
        self.backend = backend
        self.store = store
        self.verbose = verbose

    def predict_item(self, item: FoodItem, model: str, dataset_number: int = 0) -> PredictionRecord:
        """Predict one item; raises InferenceError on backend failure."""
        prompt = build_prompt(item.ingredients)

        managed_before = _managed_heap_kb()
        native_before = self.backend.native_heap_kb()
        rss_before = _resident_kb()

        t0 = time.perf_counter()
        raw = self.backend.infer(prompt, model)
        latency_ms = int((time.perf_counter() - t0) * 1000)

        managed_after = _managed_heap_kb()
        native_after = self.backend.native_heap_kb()
        rss_after = _resident_kb()

        parsed = parse_response(raw)
        if not parsed.ok:
            raise InferenceError(parsed.error)

        if native_before == NOT_MEASURED or native_after == NOT_MEASURED:
            native_kb = NOT_MEASURED
        else:
            native_kb = max(native_after - native_before, 0)

        telemetry = InferenceTelemetry(
            latency_ms=latency_ms,
            ttft_ms=parsed.ttft_ms,
            itps=parsed.itps,
            otps=parsed.otps,
            oet_ms=parsed.oet_ms,
            managed_heap_kb=max(managed_after - managed_before, 0),
            native_heap_kb=native_kb,
            total_pss_kb=max(rss_after - rss_before, 0),
        )
        return PredictionRecord.create(
            record_id=item.id,
            food_name=item.name,
            ingredients=item.ingredients,
            ground_truth_text=item.allergens_mapped,
            predicted_text=format_allergens(extract_allergens(parsed.output)),
            model_name=model,
            dataset_number=dataset_number,
            telemetry=telemetry,
        )

    def run(self, items: Sequence[FoodItem], model: str, dataset_number: int = 0) -> RunSummary:
        """
        Predict every item, collect failures, save records to the store.

        A failed item yields no record; it is listed in RunSummary.failures.
        """
        summary = RunSummary(model_name=model, dataset_number=dataset_number)
        started_tracing = not tracemalloc.is_tracing()
        if started_tracing:
            tracemalloc.start()

        start = time.time()
        try:
            for i, item in enumerate(items, 1):
                try:
                    record = self.predict_item(item, model, dataset_number)
                except InferenceError as e:
                    logger.warning("Prediction failed for %s (%s): %s", item.id, model, e)
                    summary.failures.append((item.id, str(e)))
                    continue
                summary.records.append(record)
                if self.verbose:
                    print(f"  [{i}/{len(items)}] {item.name[:40]:<40} -> {record.predicted_text}")
        finally:
            if started_tracing:
                tracemalloc.stop()
        summary.elapsed_s = time.time() - start

        if self.store is not None and summary.records:
            result = self.store.save_many(summary.records)
            if result.success:
                summary.saved = result.value or 0
            else:
                logger.error("Saving %d records failed: %s", len(summary.records), result.message)

        if self.verbose:
            print(f"[Predict] {model} set {dataset_number}: "
                  f"{len(summary.records)} ok, {len(summary.failures)} failed, "
                  f"{summary.saved} saved ({summary.elapsed_s:.1f}s)")
        return summary
