"""
Keyword and content generation using the configured AI provider.

Keywords: a short list of search phrases for a product or collection. Never
fails; when the provider is unavailable the page title is used instead.

Content: SEO-optimized HTML body for a product, collection or article.
Provider failures surface as ContentGenerationError.
"""
import logging
import re
from typing import List, Optional

from django.core.exceptions import ImproperlyConfigured

from ai.providers import AIProviderError, get_provider

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 2
DESCRIPTION_PROMPT_CHARS = 500

KEYWORD_SYSTEM_PROMPT = 'You are an SEO expert. Generate only keyword phrases, one per line, no explanations.'

CONTENT_SYSTEM_PROMPT = (
    "You are an expert e-commerce SEO copywriter. You write clear, persuasive, "
    "well-structured HTML for Shopify stores. Output only the HTML body: no "
    "markdown, no <html>, <head> or <body> tags."
)

WORD_RANGES = {
    'PRODUCT': '300-500',
    'COLLECTION': '300-500',
    'ARTICLE': '800-1200',
}

_NUMBERING_RE = re.compile(r'^\s*\d+[.)]\s+')
_BULLET_RE = re.compile(r'^\s*[-*•]\s*')
_FENCE_RE = re.compile(r'^```[a-zA-Z]*\s*|\s*```$')


class ContentGenerationError(Exception):
    pass


def parse_keyword_lines(text: str) -> List[str]:
    """Keyword phrases from a one-per-line provider reply, at most MAX_KEYWORDS."""
    keywords = []
    for line in (text or '').splitlines():
        line = _BULLET_RE.sub('', _NUMBERING_RE.sub('', line)).strip().strip('"\'').strip()
        if line:
            keywords.append(line)
    return keywords[:MAX_KEYWORDS]


def fallback_keywords(title: str) -> List[str]:
    """Lowercased title and its first three words."""
    lowered = ' '.join((title or '').lower().split())
    candidates = [lowered, ' '.join(lowered.split()[:3])]
    keywords = []
    for candidate in candidates:
        if candidate and candidate not in keywords:
            keywords.append(candidate)
    return keywords[:MAX_KEYWORDS]


def _keyword_prompt(title: str, description: Optional[str]) -> str:
    prompt = (
        "Generate 2 SEO keyword phrases for a store page.\n"
        "Only return the keywords, one per line, no numbering, no explanations.\n\n"
        f"Page Title: {title}\n"
    )
    if description:
        prompt += f"Description: {description[:DESCRIPTION_PROMPT_CHARS]}\n"
    prompt += (
        "\nGenerate relevant, searchable keyword phrases that customers might use to find this page. "
        "Focus on name variations, use cases and related search terms.\n\n"
        "Return only the keywords, one per line:"
    )
    return prompt


def generate_keywords(title: str, description: Optional[str] = None, provider=None) -> List[str]:
    try:
        provider = provider or get_provider()
        reply = provider.complete(KEYWORD_SYSTEM_PROMPT, _keyword_prompt(title, description),
                                  temperature=0.7, max_tokens=200)
    except Exception as e:
        logger.warning(f"Keyword generation failed for '{title}', using title fallback: {e}")
        return fallback_keywords(title)

    keywords = parse_keyword_lines(reply)
    return keywords or fallback_keywords(title)


def _content_prompt(page_type: str, title: str, keyword: str, description: Optional[str]) -> str:
    word_range = WORD_RANGES[page_type]
    kind = {'PRODUCT': 'product description', 'COLLECTION': 'collection page description',
            'ARTICLE': 'blog article'}[page_type]
    prompt = (
        f'Write a {word_range} word SEO-optimized {kind} for "{title}".\n'
        f'Primary keyword: "{keyword}"\n'
    )
    if description:
        prompt += f"Existing description: {description[:DESCRIPTION_PROMPT_CHARS]}\n"
    prompt += (
        "\nRequirements:\n"
        "- Use the primary keyword in the first paragraph and in at least one heading\n"
        "- Structure with <h2>/<h3> headings, short paragraphs and lists where useful\n"
        "- Write for shoppers first; no keyword stuffing\n"
    )
    if page_type == 'ARTICLE':
        prompt += "- Include an introduction, several sections and a conclusion\n"
    else:
        prompt += "- Highlight benefits and end with a clear call to action\n"
    return prompt


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub('', text.strip()).strip()


def generate_content(page_type: str, title: str, keyword: str,
                     description: Optional[str] = None, provider=None) -> str:
    """
    Generate the HTML body for a page.

    Raises ContentGenerationError when the provider fails or returns nothing usable.
    """
    if page_type not in WORD_RANGES:
        raise ContentGenerationError(f"Unsupported page type: {page_type}")

    max_tokens = 3000 if page_type == 'ARTICLE' else 1500
    try:
        provider = provider or get_provider()
        reply = provider.complete(CONTENT_SYSTEM_PROMPT,
                                  _content_prompt(page_type, title, keyword, description),
                                  temperature=0.7, max_tokens=max_tokens)
    except (AIProviderError, ImproperlyConfigured) as e:
        logger.error(f"Content generation failed for '{title}': {e}")
        raise ContentGenerationError(str(e)) from e

    html = strip_code_fences(reply)
    if not html:
        raise ContentGenerationError('AI provider returned empty content')
    return html
