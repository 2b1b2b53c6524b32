from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatch
from typing import Optional, Tuple
from urllib.parse import urlsplit, parse_qs

class DomainCategory(Enum):
    AI_TOOL = "ai_tool"
    SUSPICIOUS_SEARCH = "suspicious_search"
    ASSESSMENT = "assessment"
    OTHER = "other"

@dataclass
class DomainVerdict:
    category: DomainCategory
    reason: str
    host: str = ""
    query: Optional[str] = None

def _host_patterns(domains: Tuple[str, ...]) -> Tuple[str, ...]:
    # "openai.com" matches the bare host and any subdomain
    out = []
    for d in domains:
        out.append(d)
        out.append(f"*.{d}")
    return tuple(out)

AI_TOOL_DOMAINS: Tuple[str, ...] = (
    "chat.openai.com", "chatgpt.com", "openai.com", "perplexity.ai",
    "bard.google.com", "gemini.google.com", "claude.ai", "anthropic.com",
    "copilot.microsoft.com", "bing.com/chat*", "character.ai", "jasper.ai",
    "writesonic.com", "copy.ai", "grammarly.com", "quillbot.com",
    "paraphraser.io", "spinbot.com", "rewriter.tools", "wordtune.com",
)

SEARCH_DOMAINS: Tuple[str, ...] = (
    "google.com", "bing.com", "yahoo.com", "duckduckgo.com", "ask.com", "baidu.com",
)

SUSPICIOUS_KEYWORDS: Tuple[str, ...] = (
    "essay writing", "homework help", "assignment help", "write my essay",
    "essay generator", "ai writing", "chatgpt", "artificial intelligence writing",
    "automated writing", "essay bot",
)

@dataclass
class DomainPolicy:
    """
    Classifies a visited URL. Patterns are fnmatch globs over "host/path".
    Order: AI tools, assessment allow-list, search engines with flagged queries.
    `assessment` holds the hosts the assessment itself is served from.
    """
    ai_tools: Tuple[str, ...] = _host_patterns(AI_TOOL_DOMAINS)
    search_engines: Tuple[str, ...] = _host_patterns(SEARCH_DOMAINS)
    keywords: Tuple[str, ...] = SUSPICIOUS_KEYWORDS
    assessment: Tuple[str, ...] = ("localhost", "127.0.0.1")

    def decide(self, url: Optional[str]) -> DomainVerdict:
        parts = urlsplit(url or "")
        host = (parts.hostname or "").lower()
        if not host:
            return DomainVerdict(DomainCategory.OTHER, "no-host")
        target = f"{host}{parts.path or ''}".lower()

        for pat in self.ai_tools:
            # path-qualified patterns match host/path, the rest match the host alone
            subject = target if "/" in pat else host
            if fnmatch(subject, pat):
                return DomainVerdict(DomainCategory.AI_TOOL, f"deny:{pat}", host)
        for pat in self.assessment:
            if fnmatch(host, pat):
                return DomainVerdict(DomainCategory.ASSESSMENT, f"allow:{pat}", host)
        for pat in self.search_engines:
            if fnmatch(host, pat):
                query = " ".join(parse_qs(parts.query).get("q", []))
                lowered = query.lower()
                for kw in self.keywords:
                    if kw in lowered:
                        return DomainVerdict(DomainCategory.SUSPICIOUS_SEARCH, f"keyword:{kw}", host, query)
                break
        return DomainVerdict(DomainCategory.OTHER, "default", host)
