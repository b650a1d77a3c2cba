"""Generation service: the adapter between jobs and the text-generation provider.

``generate_text`` is the single primitive that talks to the provider through
LiteLLM. Every call is bounded by a wall-clock timeout and retried with
exponential backoff on transient failures (rate limiting, 5xx, timeouts,
connection resets). Everything else fails immediately.

The six typed operations (``generate_keywords`` ... ``generate_hashtags``)
each build a prompt, call ``generate_text``, parse the JSON reply and
normalize it into a typed result. Normalization tolerates sparse replies:
missing fields get defaults rather than raising.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..core.config import settings
from ..core.retry import exponential_backoff, retry_call, run_with_timeout, CancelToken
from ..exceptions import (
    PreconditionError,
    ProviderConfigurationError,
    ProviderError,
    ProviderRequestError,
    TransientProviderError,
)
from ..models.job import JobType
from ..schemas.generation import (
    ArticleInput,
    ArticleResult,
    ArticleSummary,
    ArticleTaskInput,
    GenerationInput,
    GenerationOutcome,
    HashtagsResult,
    ImageResult,
    KeywordItem,
    KeywordsInput,
    KeywordsResult,
    MetaResult,
    OpenGraphTags,
    PlatformHashtags,
    SeoResult,
    TextGeneration,
    TwitterCardTags,
)
from . import prompts
from .response_parser import parse_json_response

logger = logging.getLogger(__name__)

# Substrings that mark a network-level failure worth retrying.
_TRANSIENT_MARKERS = ("etimedout", "econnreset", "timed out", "timeout", "connection reset", "abort")

DEFAULT_SEO_SCORE = 75


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def classify_provider_error(exc: BaseException, provider: str = "") -> ProviderError:
    """Map an exception raised by the provider SDK onto the ProviderError hierarchy."""
    if isinstance(exc, ProviderError):
        return exc

    message = str(exc) or type(exc).__name__
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)

    if isinstance(exc, TimeoutError) or status == 408:
        return TransientProviderError(message, code="PROVIDER_TIMEOUT", provider=provider)
    if status == 429:
        return TransientProviderError(message, code="RATE_LIMITED", provider=provider)
    if isinstance(status, int) and status >= 500:
        return TransientProviderError(message, code="PROVIDER_UNAVAILABLE", provider=provider)
    if isinstance(exc, ConnectionError) or any(m in message.lower() for m in _TRANSIENT_MARKERS):
        return TransientProviderError(message, code="NETWORK_ERROR", provider=provider)
    return ProviderRequestError(message, code="AI_CALL_FAILED", provider=provider)


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retriable


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------

def normalize_keywords(keywords: Any) -> List[str]:
    """Reduce a keyword list (strings or ``{keyword|term}`` objects) to plain strings."""
    if not isinstance(keywords, (list, tuple)):
        return []
    out = []
    for k in keywords:
        if isinstance(k, str):
            value = k
        elif isinstance(k, dict):
            value = k.get("keyword") or k.get("term") or ""
        else:
            value = ""
        if isinstance(value, str) and value.strip():
            out.append(value.strip())
    return out


def html_to_text(html: str) -> str:
    """Strip tags and collapse whitespace."""
    text = re.sub(r"<[^>]*>", " ", html or "")
    return re.sub(r"\s+", " ", text).strip()


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _text(data: Dict[str, Any], *keys: str) -> str:
    """First non-empty string among *keys*, else ''."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _strip_hash(tag: str) -> str:
    return tag.replace("#", "", 1).strip()


def _require(condition: bool, operation: str, fields: Sequence[str]) -> None:
    if not condition:
        raise PreconditionError(
            f"{operation}: {', '.join(fields)} required.",
            missing=fields,
        )


class GenerationService:
    """Runs typed generation operations against a LiteLLM-backed model."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        provider: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.model = model or settings.ai_model
        self.api_key = settings.ai_api_key if api_key is None else api_key
        self.api_base = settings.ai_api_base if api_base is None else api_base
        self.provider = provider or settings.ai_provider
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.ai_timeout_ms / 1000
        self.retry_attempts = retry_attempts or settings.ai_retry_attempts
        self.retry_base_seconds = (
            retry_base_seconds if retry_base_seconds is not None else settings.ai_retry_base_ms / 1000
        )
        self._sleep = sleep

        self._operations: Dict[str, Callable[[Any], GenerationOutcome]] = {
            JobType.KEYWORDS.value: self.generate_keywords,
            JobType.ARTICLE.value: self.generate_article,
            JobType.SEO.value: self.generate_seo_review,
            JobType.META.value: self.generate_meta,
            JobType.IMAGE.value: self.generate_image,
            JobType.HASHTAGS.value: self.generate_hashtags,
        }

    def is_configured(self) -> bool:
        """Check if the provider can be called (needs a model and API key)."""
        return bool(self.model and self.api_key)

    # ------------------------------------------------------------------
    # Primitive
    # ------------------------------------------------------------------

    def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stop: Optional[List[str]] = None,
    ) -> TextGeneration:
        """Send one prompt to the provider and return its text and usage.

        Raises:
            PreconditionError: *prompt* is empty.
            ProviderConfigurationError: no API key is configured.
            TransientProviderError: retries exhausted on transient failures.
            ProviderRequestError: the provider rejected the request.
        """
        if not isinstance(prompt, str) or not prompt:
            raise PreconditionError("generate_text: `prompt` (string) is required.", missing=["prompt"])
        if not self.is_configured():
            raise ProviderConfigurationError(
                "AI_API_KEY is not set. Set AI_API_KEY (and AI_MODEL) in the environment or .env.",
                provider=self.provider,
            )

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        completion_kwargs: Dict[str, Any] = {
            "model": self.model,
            "api_key": self.api_key,
            "messages": messages,
        }
        if self.api_base:
            completion_kwargs["api_base"] = self.api_base
        if isinstance(temperature, (int, float)):
            completion_kwargs["temperature"] = temperature
        if isinstance(max_tokens, int):
            completion_kwargs["max_tokens"] = max_tokens
        if stop:
            completion_kwargs["stop"] = list(stop)

        def _attempt(attempt: int) -> TextGeneration:
            try:
                return run_with_timeout(
                    lambda token: self._complete(completion_kwargs, token),
                    timeout=self.timeout_seconds,
                    label="provider-call",
                )
            except TimeoutError as e:
                raise TransientProviderError(str(e), code="PROVIDER_TIMEOUT", provider=self.provider) from e

        return retry_call(
            _attempt,
            attempts=self.retry_attempts,
            is_retriable=is_transient_error,
            backoff=exponential_backoff(self.retry_base_seconds),
            sleep=self._sleep,
            label=f"{self.provider} completion",
        )

    def _complete(self, completion_kwargs: Dict[str, Any], token: CancelToken) -> TextGeneration:
        """One provider call. Runs on the timeout helper's worker thread."""
        if token.cancelled:
            raise TransientProviderError("Call cancelled before start", code="PROVIDER_TIMEOUT", provider=self.provider)

        import litellm

        try:
            response = litellm.completion(**completion_kwargs, timeout=max(token.remaining(), 0.001))
        except Exception as e:
            raise classify_provider_error(e, self.provider) from e

        text = ""
        choices = getattr(response, "choices", None) or []
        if choices:
            text = getattr(choices[0].message, "content", None) or ""
        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", None) or 0

        return TextGeneration(text=text, tokens_used=int(tokens_used), model=self.model)

    def _call_json(self, kind: str, prompt: str) -> tuple[Dict[str, Any], int]:
        """generate_text with the kind's system prompt, then parse the reply as a JSON object."""
        temperature, max_tokens = prompts.GENERATION_PARAMS[kind]
        generation = self.generate_text(
            prompt,
            system=prompts.SYSTEM_PROMPTS[kind],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        data = parse_json_response(generation.text, context=kind.lower(), tokens_used=generation.tokens_used)
        return _as_dict(data), generation.tokens_used

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def generate(self, kind: Union[JobType, str], generation_input: GenerationInput) -> GenerationOutcome:
        """Run the typed operation for *kind*."""
        kind_value = kind.value if isinstance(kind, JobType) else str(kind).upper()
        operation = self._operations.get(kind_value)
        if operation is None:
            raise ProviderRequestError(f"Unsupported job type: {kind_value}", code="UNSUPPORTED_JOB_TYPE")
        if getattr(generation_input, "kind", None) != kind_value:
            raise PreconditionError(
                f"Input of kind {getattr(generation_input, 'kind', None)} does not match job type {kind_value}",
                missing=["kind"],
            )
        return operation(generation_input)

    # ------------------------------------------------------------------
    # Prompt helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _language(locale: str, register: str = "fields") -> str:
        table = prompts.LANGUAGE_INSTRUCTIONS.get(locale) or prompts.LANGUAGE_INSTRUCTIONS["en"]
        return table[register]

    @staticmethod
    def _keywords_line(kind: str, keywords: List[str], topic: str) -> str:
        limited = keywords[:prompts.KEYWORD_LIMITS[kind]]
        return ", ".join(limited) if limited else topic

    @staticmethod
    def _requirements(kind: str) -> str:
        return "\n".join(f"- {line}" for line in prompts.REQUIREMENTS[kind])

    def _outcome(self, result: Any, tokens_used: int) -> GenerationOutcome:
        return GenerationOutcome(result=result, tokens_used=int(tokens_used or 0), model=self.model)

    # ------------------------------------------------------------------
    # Typed operations
    # ------------------------------------------------------------------

    def generate_keywords(self, inp: KeywordsInput) -> GenerationOutcome:
        """Research keywords for a seed topic."""
        seed = (inp.seed or "").strip()
        _require(bool(seed), "generate_keywords", ["seed"])

        prompt = (
            f"{self._language(inp.locale)}\n\n"
            f'Generate SEO keywords for the topic: "{seed}"\n\n'
            "Return ONLY valid JSON in this exact format:\n"
            f"{prompts.KEYWORDS_FORMAT.replace('<topic>', seed)}\n\n"
            "Generate 8-12 relevant keywords with estimated search volume and difficulty scores."
        )
        data, tokens_used = self._call_json("KEYWORDS", prompt)

        keywords = []
        for index, item in enumerate(_as_list(data.get("keywords"))):
            if isinstance(item, str):
                if item.strip():
                    keywords.append(KeywordItem(keyword=item.strip()))
                continue
            item = _as_dict(item)
            keywords.append(KeywordItem(
                keyword=_text(item, "keyword", "term") or f"keyword-{index + 1}",
                volume=_as_number(item.get("volume")),
                difficulty=_as_number(item.get("difficulty")),
                source=_text(item, "source") or "generated",
            ))

        result = KeywordsResult(topic=_text(data, "topic") or seed, keywords=keywords)
        return self._outcome(result, tokens_used)

    def generate_article(self, inp: ArticleInput) -> GenerationOutcome:
        """Write an HTML article for a topic and keyword list."""
        topic = (inp.topic or "").strip()
        _require(bool(topic), "generate_article", ["topic"])

        word_target = prompts.ARTICLE_WORD_TARGETS.get(inp.settings.length, prompts.ARTICLE_WORD_TARGETS["medium"])
        tone = inp.settings.tone or "professional"

        prompt = (
            f"{self._language(inp.locale, 'article')}\n\n"
            f'Write a comprehensive SEO-optimized article about: "{topic}"\n\n'
            f"Target keywords to include naturally: {self._keywords_line('ARTICLE', inp.keywords, topic)}\n\n"
            "Requirements:\n"
            f"- Word count: {word_target} words\n"
            f"- Tone: {tone}\n"
            f"{self._requirements('ARTICLE')}\n\n"
            "Return ONLY valid JSON in this exact format:\n"
            f"{prompts.ARTICLE_FORMAT}\n\n"
            "The content should be formatted as HTML with proper heading tags (h1, h2, h3) and paragraph tags."
        )
        data, tokens_used = self._call_json("ARTICLE", prompt)

        title = _text(data, "title") or f"Article: {topic}"
        content = _text(data, "content") or f"<h1>{title}</h1>\n\n<p>Content generation failed. Please try again.</p>"
        word_count = _as_number(data.get("wordCount", data.get("word_count")))
        if word_count is None:
            word_count = len(html_to_text(content).split())

        result = ArticleResult(
            title=title,
            content=content,
            word_count=int(word_count),
            topic=topic,
            keywords=list(inp.keywords),
        )
        return self._outcome(result, tokens_used)

    def generate_seo_review(self, inp: ArticleTaskInput) -> GenerationOutcome:
        """Score an article for SEO and list recommendations."""
        _require(bool(inp.article.content) and bool(inp.topic), "generate_seo_review", ["article.content", "topic"])

        text_content = html_to_text(inp.article.content)
        word_count = len(text_content.split())
        preview = text_content[:prompts.CONTENT_PREVIEW_LENGTHS["SEO"]]

        prompt = (
            f"{self._language(inp.locale)}\n\n"
            "Analyze the following article for SEO optimization:\n\n"
            f"Title: {inp.article.title}\n"
            f"Target Topic: {inp.topic}\n"
            f"Target Keywords: {self._keywords_line('SEO', inp.keywords, inp.topic)}\n"
            f"Word Count: {word_count}\n"
            f"Content Preview: {preview}\n\n"
            "Provide a comprehensive SEO analysis and return ONLY valid JSON in this exact format:\n"
            f"{prompts.SEO_FORMAT}\n\n"
            "Return only the JSON, no explanations."
        )
        data, tokens_used = self._call_json("SEO", prompt)

        raw_score = _as_number(data.get("score"))
        score = DEFAULT_SEO_SCORE if raw_score is None else max(0, min(100, raw_score))
        strengths = _as_list(data.get("strengths"))
        issues = _as_list(data.get("issues"))
        analysis = dict(_as_dict(data.get("analysis")))
        analysis.setdefault("strengths", strengths)
        analysis.setdefault("improvements", issues)

        result = SeoResult(
            score=score,
            analysis=analysis,
            recommendations=_as_list(data.get("recommendations")),
            strengths=strengths,
            issues=issues,
            article=ArticleSummary(title=inp.article.title, word_count=word_count),
            keywords=list(inp.keywords),
            topic=inp.topic,
        )
        return self._outcome(result, tokens_used)

    def generate_meta(self, inp: ArticleTaskInput) -> GenerationOutcome:
        """Produce meta, OpenGraph and Twitter card tags for an article."""
        _require(bool(inp.article.title) and bool(inp.topic), "generate_meta", ["article.title", "topic"])

        preview = html_to_text(inp.article.content)[:prompts.CONTENT_PREVIEW_LENGTHS["META"]]
        keywords_line = self._keywords_line("META", inp.keywords, inp.topic)

        prompt = (
            f"{self._language(inp.locale)}\n\n"
            "Generate SEO meta tags for the following article:\n\n"
            f"Title: {inp.article.title}\n"
            f"Topic: {inp.topic}\n"
            f"Keywords: {keywords_line}\n"
            f"Content Preview: {preview}\n\n"
            "Generate optimized meta tags and return ONLY valid JSON in this exact format:\n"
            f"{prompts.META_FORMAT}\n\n"
            "Requirements:\n"
            f"{self._requirements('META')}\n\n"
            "Return only the JSON, no explanations."
        )
        data, tokens_used = self._call_json("META", prompt)

        meta_title = _text(data, "metaTitle", "meta_title") or inp.article.title[:60]
        meta_description = (
            _text(data, "metaDescription", "meta_description")
            or f"Learn about {inp.topic}. {preview[:120]}..."
        )
        result = MetaResult(
            meta_title=meta_title,
            meta_description=meta_description,
            meta_keywords=_text(data, "metaKeywords", "meta_keywords") or keywords_line,
            open_graph=OpenGraphTags(
                title=_text(data, "ogTitle") or meta_title,
                description=_text(data, "ogDescription") or meta_description[:140],
            ),
            twitter=TwitterCardTags(
                title=_text(data, "twitterTitle") or meta_title,
                description=_text(data, "twitterDescription") or meta_description,
            ),
            article=ArticleSummary(title=inp.article.title, topic=inp.topic),
            keywords=list(inp.keywords),
        )
        return self._outcome(result, tokens_used)

    def generate_image(self, inp: ArticleTaskInput) -> GenerationOutcome:
        """Describe a hero image for an article (prompt, alt text, caption)."""
        _require(bool(inp.article.title) and bool(inp.topic), "generate_image", ["article.title", "topic"])

        preview = html_to_text(inp.article.content)[:prompts.CONTENT_PREVIEW_LENGTHS["IMAGE"]]

        prompt = (
            f"{self._language(inp.locale)}\n\n"
            "Generate image specifications for the following article:\n\n"
            f"Title: {inp.article.title}\n"
            f"Topic: {inp.topic}\n"
            f"Keywords: {self._keywords_line('IMAGE', inp.keywords, inp.topic)}\n"
            f"Content Preview: {preview}\n\n"
            "Generate image specifications and return ONLY valid JSON in this exact format:\n"
            f"{prompts.IMAGE_FORMAT}\n\n"
            "Requirements:\n"
            f"{self._requirements('IMAGE')}\n\n"
            "Return only the JSON, no explanations."
        )
        data, tokens_used = self._call_json("IMAGE", prompt)

        result = ImageResult(
            prompt=(
                _text(data, "imagePrompt", "prompt")
                or f"Professional image related to {inp.topic}, high quality, modern style"
            ),
            alt_text=_text(data, "altText", "alt_text") or f"{inp.topic} - {inp.article.title[:60]}",
            caption=_text(data, "caption") or f"Image related to {inp.topic}",
            style=_text(data, "style") or "professional",
            suggestions=_as_list(data.get("suggestions")),
            article=ArticleSummary(title=inp.article.title, topic=inp.topic),
            keywords=list(inp.keywords),
        )
        return self._outcome(result, tokens_used)

    def generate_hashtags(self, inp: ArticleTaskInput) -> GenerationOutcome:
        """Suggest hashtags grouped by relevance, plus per-platform strings."""
        _require(bool(inp.article.title) and bool(inp.topic), "generate_hashtags", ["article.title", "topic"])

        preview = html_to_text(inp.article.content)[:prompts.CONTENT_PREVIEW_LENGTHS["HASHTAGS"]]

        prompt = (
            f"{self._language(inp.locale)}\n\n"
            "Generate social media hashtags for the following article:\n\n"
            f"Title: {inp.article.title}\n"
            f"Topic: {inp.topic}\n"
            f"Keywords: {self._keywords_line('HASHTAGS', inp.keywords, inp.topic)}\n"
            f"Content Preview: {preview}\n\n"
            "Generate hashtags and return ONLY valid JSON in this exact format:\n"
            f"{prompts.HASHTAGS_FORMAT}\n\n"
            "Requirements:\n"
            f"{self._requirements('HASHTAGS')}\n\n"
            "Return only the JSON, no explanations."
        )
        data, tokens_used = self._call_json("HASHTAGS", prompt)

        hashtags: List[Dict[str, Any]] = []
        for item in _as_list(data.get("hashtags")):
            if isinstance(item, str) and item.strip():
                hashtags.append({"tag": item.strip()})
            elif isinstance(item, dict) and _text(item, "tag"):
                hashtags.append(item)

        if not hashtags:
            for keyword in inp.keywords[:5]:
                cleaned = re.sub(r"[^a-zA-Z0-9]", "", keyword)
                if cleaned:
                    hashtags.append({"tag": f"#{cleaned}", "popularity": "medium", "relevance": "primary"})

        primary = [_strip_hash(h["tag"]) for h in hashtags if h.get("relevance") == "primary"]
        secondary = [_strip_hash(h["tag"]) for h in hashtags if h.get("relevance") == "secondary"]
        trending = [_strip_hash(t) for t in _as_list(data.get("trending")) if isinstance(t, str) and t.strip()]

        # Providers often skip the relevance field; fall back to list position.
        if not primary and hashtags:
            primary = [_strip_hash(h["tag"]) for h in hashtags[:5]]
        if not secondary and len(hashtags) > 5:
            secondary = [_strip_hash(h["tag"]) for h in hashtags[5:10]]

        def _join(tags: List[str]) -> str:
            return " ".join(f"#{tag}" for tag in tags)

        platforms = _as_dict(data.get("platforms"))
        result = HashtagsResult(
            primary=primary[:8],
            secondary=secondary[:10],
            trending=trending[:5],
            platforms=PlatformHashtags(
                twitter=_text(platforms, "twitter") or _join(primary[:3]),
                instagram=_text(platforms, "instagram") or _join(primary[:5] + secondary[:3]),
                linkedin=_text(platforms, "linkedin") or _join(primary[:4]),
            ),
            all=hashtags,
            article=ArticleSummary(title=inp.article.title, topic=inp.topic),
            keywords=list(inp.keywords),
        )
        return self._outcome(result, tokens_used)
