"""Capability taxonomy and keyword-based inference.

Inference is a best-effort heuristic: a capability applies when any of its
keyword phrases occurs in the lower-cased task text.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

GENERAL_CAPABILITY = "general"
UNKNOWN_CAPABILITY_DESCRIPTION = "Specialized capability"

CAPABILITY_KEYWORDS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "summarize": ("summarize", "summary", "tldr", "condense"),
        "translate": ("translate", "translation", "language"),
        "image-generate": ("generate image", "create image", "draw", "illustration"),
        "image-analyze": ("analyze image", "describe image", "what's in this"),
        "search": ("search", "find", "look up", "google"),
        "web-scrape": ("scrape", "extract from", "crawl"),
        "code-generate": ("write code", "generate code", "create function"),
        "code-analyze": ("analyze code", "review code", "explain code"),
        "blockchain-query": ("blockchain", "transaction", "wallet", "balance"),
        "data-transform": ("transform", "convert", "parse", "format"),
        "sentiment": ("sentiment", "feeling", "emotion", "tone"),
        "classify": ("classify", "categorize", "label", "tag"),
    }
)

CAPABILITY_DESCRIPTIONS: Mapping[str, str] = MappingProxyType(
    {
        "summarize": "Condense long text into key points",
        "translate": "Convert text between languages",
        "image-generate": "Create images from text descriptions",
        "image-analyze": "Describe and analyze image contents",
        "search": "Search the web or databases",
        "web-scrape": "Extract data from websites",
        "code-generate": "Write code in various languages",
        "code-analyze": "Review and explain code",
        "blockchain-query": "Query blockchain data",
        "data-transform": "Transform and convert data formats",
        "sentiment": "Analyze emotional tone of text",
        "classify": "Categorize and label content",
        GENERAL_CAPABILITY: "General-purpose processing",
    }
)

CAPABILITY_CATEGORIES: tuple[dict[str, str], ...] = (
    {"name": "ai", "description": "AI/ML services (summarization, generation, analysis)"},
    {"name": "blockchain", "description": "Blockchain queries and transactions"},
    {"name": "data", "description": "Data transformation and processing"},
    {"name": "web", "description": "Web scraping and API calls"},
    {"name": "media", "description": "Image, audio, video processing"},
    {"name": "finance", "description": "Pricing, payments, trading"},
)


@dataclass(frozen=True)
class CapabilityTaxonomy:
    """Read-only capability configuration.

    Attributes:
        keywords: capability -> keyword phrases, in inference order
        descriptions: capability -> human description
    """

    keywords: Mapping[str, tuple[str, ...]] = CAPABILITY_KEYWORDS
    descriptions: Mapping[str, str] = CAPABILITY_DESCRIPTIONS

    def infer(self, task: str) -> list[str]:
        """Infer capability tags from free text.

        Always returns at least one tag, falling back to ``general``.
        """
        text = task.lower()
        capabilities = [
            capability
            for capability, phrases in self.keywords.items()
            if any(phrase in text for phrase in phrases)
        ]
        return capabilities or [GENERAL_CAPABILITY]

    def describe(self, capability: str) -> str:
        return self.descriptions.get(capability, UNKNOWN_CAPABILITY_DESCRIPTION)


DEFAULT_TAXONOMY = CapabilityTaxonomy()


def infer_capabilities(task: str) -> list[str]:
    return DEFAULT_TAXONOMY.infer(task)
