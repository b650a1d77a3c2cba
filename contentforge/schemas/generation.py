"""Typed inputs and results for the six generation kinds.

Job payloads and results are stored as JSON, but inside the worker every kind
has its own input and result model. ``GenerationInput`` is the tagged union
of inputs, discriminated by ``kind``.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ArticleSettings(BaseModel):
    """Article length/tone knobs from the job payload."""
    length: str = "medium"
    tone: str = "professional"


class ArticleRef(BaseModel):
    """An existing article that SEO/META/IMAGE/HASHTAGS jobs work from."""
    title: str
    content: str = ""


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class KeywordsInput(BaseModel):
    kind: Literal["KEYWORDS"] = "KEYWORDS"
    seed: str
    locale: str = "en"


class ArticleInput(BaseModel):
    kind: Literal["ARTICLE"] = "ARTICLE"
    topic: str
    keywords: List[str] = Field(default_factory=list)
    locale: str = "en"
    settings: ArticleSettings = Field(default_factory=ArticleSettings)


class ArticleTaskInput(BaseModel):
    """Input for the kinds that derive content from an existing article."""
    kind: Literal["SEO", "META", "IMAGE", "HASHTAGS"]
    article: ArticleRef
    topic: str
    keywords: List[str] = Field(default_factory=list)
    locale: str = "en"


GenerationInput = Union[KeywordsInput, ArticleInput, ArticleTaskInput]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class KeywordItem(BaseModel):
    keyword: str
    volume: Optional[float] = None
    difficulty: Optional[float] = None
    source: str = "generated"


class KeywordsResult(BaseModel):
    topic: str
    keywords: List[KeywordItem] = Field(default_factory=list)


class ArticleResult(BaseModel):
    title: str
    content: str
    word_count: int
    topic: str
    keywords: List[str] = Field(default_factory=list)


class ArticleSummary(BaseModel):
    title: str
    word_count: Optional[int] = None
    topic: Optional[str] = None


class SeoResult(BaseModel):
    score: float
    analysis: Dict[str, Any] = Field(default_factory=dict)
    recommendations: List[Any] = Field(default_factory=list)
    strengths: List[Any] = Field(default_factory=list)
    issues: List[Any] = Field(default_factory=list)
    article: ArticleSummary
    keywords: List[str] = Field(default_factory=list)
    topic: str


class OpenGraphTags(BaseModel):
    title: str
    description: str
    type: str = "article"


class TwitterCardTags(BaseModel):
    title: str
    description: str
    card: str = "summary_large_image"


class MetaResult(BaseModel):
    meta_title: str
    meta_description: str
    meta_keywords: str
    open_graph: OpenGraphTags
    twitter: TwitterCardTags
    article: ArticleSummary
    keywords: List[str] = Field(default_factory=list)


class ImageResult(BaseModel):
    prompt: str
    alt_text: str
    caption: str
    style: str
    dimensions: str = "1200x630"
    suggestions: List[Any] = Field(default_factory=list)
    article: ArticleSummary
    keywords: List[str] = Field(default_factory=list)


class PlatformHashtags(BaseModel):
    twitter: str = ""
    instagram: str = ""
    linkedin: str = ""


class HashtagsResult(BaseModel):
    primary: List[str] = Field(default_factory=list)
    secondary: List[str] = Field(default_factory=list)
    trending: List[str] = Field(default_factory=list)
    platforms: PlatformHashtags = Field(default_factory=PlatformHashtags)
    all: List[Dict[str, Any]] = Field(default_factory=list)
    article: ArticleSummary
    keywords: List[str] = Field(default_factory=list)


GenerationResultBody = Union[
    KeywordsResult, ArticleResult, SeoResult, MetaResult, ImageResult, HashtagsResult
]


class TextGeneration(BaseModel):
    """Raw output of one provider call."""
    text: str
    tokens_used: int = 0
    model: str


class GenerationOutcome(BaseModel):
    """Typed result of a generation operation plus usage accounting."""
    result: GenerationResultBody
    tokens_used: int = 0
    model: str
