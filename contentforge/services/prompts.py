"""Prompt templates and per-kind generation constants.

Pure data: the generation service assembles prompts from these pieces.
"""

# ---------------------------------------------------------------------------
# Language instructions, keyed by (locale, register). "fields" asks for every
# text field in the language; "article" asks for the article body.
# Unknown locales fall back to English.
# ---------------------------------------------------------------------------

LANGUAGE_INSTRUCTIONS: dict[str, dict[str, str]] = {
    "en": {
        "fields": "Respond in English for all text fields.",
        "article": "Write the article in English.",
    },
    "ro": {
        "fields": "Răspunde în română pentru toate câmpurile de text.",
        "article": "Scrie articolul în română.",
    },
}

# ---------------------------------------------------------------------------
# System instructions per kind
# ---------------------------------------------------------------------------

SYSTEM_PROMPTS: dict[str, str] = {
    "KEYWORDS": "You are an SEO strategist. Return only valid JSON, no explanations.",
    "ARTICLE": (
        "You are a professional content writer and SEO specialist. "
        "Return only valid JSON with HTML-formatted content."
    ),
    "SEO": (
        "You are an SEO expert and content analyst. "
        "Return only valid JSON with detailed SEO analysis."
    ),
    "META": (
        "You are an SEO specialist focused on meta tag optimization. "
        "Return only valid JSON with optimized meta tags."
    ),
    "IMAGE": (
        "You are a visual content specialist and image prompt engineer. "
        "Return only valid JSON with detailed image specifications."
    ),
    "HASHTAGS": (
        "You are a social media specialist and hashtag expert. "
        "Return only valid JSON with strategic hashtag recommendations."
    ),
}

# Sampling parameters per kind: (temperature, max output tokens).
GENERATION_PARAMS: dict[str, tuple[float, int]] = {
    "KEYWORDS": (0.2, 1000),
    "ARTICLE": (0.3, 4000),
    "SEO": (0.2, 2000),
    "META": (0.2, 1500),
    "IMAGE": (0.3, 1500),
    "HASHTAGS": (0.3, 2000),
}

# How many keywords each kind lists in its prompt.
KEYWORD_LIMITS: dict[str, int] = {
    "ARTICLE": 10,
    "SEO": 10,
    "META": 8,
    "IMAGE": 5,
    "HASHTAGS": 8,
}

# Characters of plain-text article content shown to the model.
CONTENT_PREVIEW_LENGTHS: dict[str, int] = {
    "SEO": 1500,
    "META": 800,
    "IMAGE": 600,
    "HASHTAGS": 500,
}

# Article length setting -> target word-count range.
ARTICLE_WORD_TARGETS: dict[str, str] = {
    "short": "500-800",
    "medium": "1000-1500",
    "long": "1500-2500",
}

# ---------------------------------------------------------------------------
# Expected JSON shapes, embedded verbatim in prompts
# ---------------------------------------------------------------------------

KEYWORDS_FORMAT = """{
  "topic": "<topic>",
  "keywords": [
    {"keyword": "example keyword", "volume": 1000, "difficulty": 25, "source": "research"},
    {"keyword": "another keyword", "volume": 2500, "difficulty": 45, "source": "analysis"}
  ]
}"""

ARTICLE_FORMAT = """{
  "title": "Compelling Article Title",
  "content": "<h1>Article Title</h1>\\n\\n<p>Introduction paragraph...</p>\\n\\n<h2>Section Heading</h2>\\n\\n<p>Content with natural keyword integration...</p>",
  "wordCount": 1200
}"""

SEO_FORMAT = """{
  "score": 85,
  "analysis": {
    "titleOptimization": "Good title with primary keyword",
    "keywordDensity": "Optimal keyword usage throughout content",
    "contentStructure": "Well-structured with proper headings",
    "readability": "Clear and easy to read"
  },
  "recommendations": ["Add meta description with primary keyword", "Include more internal links"],
  "strengths": ["Good keyword placement in title", "Clear content structure"],
  "issues": ["Missing alt text for images", "Could use more subheadings"]
}"""

META_FORMAT = """{
  "metaTitle": "SEO-optimized title (50-60 characters)",
  "metaDescription": "Compelling meta description with primary keyword (150-160 characters)",
  "metaKeywords": "keyword1, keyword2, keyword3, keyword4, keyword5",
  "ogTitle": "Social media optimized title (60 characters max)",
  "ogDescription": "Social media description (120-140 characters)",
  "twitterTitle": "Twitter optimized title (70 characters max)",
  "twitterDescription": "Twitter description (200 characters max)"
}"""

IMAGE_FORMAT = """{
  "imagePrompt": "Detailed prompt for AI image generation describing the perfect hero image for this article",
  "altText": "SEO-optimized alt text for the image (80-125 characters)",
  "caption": "Engaging caption for the image (100-150 characters)",
  "style": "professional",
  "suggestions": ["Alternative image idea 1", "Alternative image idea 2", "Alternative image idea 3"]
}"""

HASHTAGS_FORMAT = """{
  "hashtags": [
    {"tag": "#ExampleHashtag", "popularity": "high", "relevance": "primary"},
    {"tag": "#AnotherTag", "popularity": "medium", "relevance": "secondary"}
  ],
  "platforms": {
    "twitter": "#hashtag1 #hashtag2 #hashtag3",
    "instagram": "#hashtag1 #hashtag2 #hashtag3 #hashtag4 #hashtag5",
    "linkedin": "#hashtag1 #hashtag2 #hashtag3"
  },
  "trending": ["#TrendingTag1", "#TrendingTag2"]
}"""

# Per-kind requirement bullet lists appended after the format block.
REQUIREMENTS: dict[str, list[str]] = {
    "ARTICLE": [
        "Include a compelling title",
        "Structure with clear headings and subheadings",
        "Write engaging, informative content",
        "Naturally incorporate the target keywords",
        "Include actionable insights",
    ],
    "META": [
        "Meta title should include primary keyword and be 50-60 characters",
        "Meta description should be compelling, include keywords, and be 150-160 characters",
        "Meta keywords should be relevant comma-separated keywords",
        "OG tags optimized for Facebook/LinkedIn sharing",
        "Twitter tags optimized for Twitter sharing",
    ],
    "IMAGE": [
        "Image prompt should be detailed and descriptive for AI image generation",
        "Alt text should include keywords and be 80-125 characters",
        "Caption should be engaging and include relevant keywords",
        "Style should be appropriate for the content (professional, modern, illustration, etc.)",
        "Suggestions should provide 3 alternative image concepts",
    ],
    "HASHTAGS": [
        "Generate 15-20 relevant hashtags total",
        "Include popularity levels: high, medium, low",
        "Include relevance: primary, secondary, niche",
        "Platform-specific recommendations (Twitter: 3-5, Instagram: 5-10, LinkedIn: 3-5)",
        "Include 2-3 trending/popular hashtags if relevant",
        "Focus on keywords and topic relevance",
    ],
}
