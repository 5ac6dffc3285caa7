"""
Research Tool Registry

Declared tool vocabulary for the research agent. Every tool returns a dict;
failures come back as ``{"error": ..., "code": ...}`` so the loop can see and
react to them like any other result.
"""

import re
from datetime import datetime, timezone
from typing import List, Literal, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from ddgs import DDGS
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.tools import BaseTool, tool

from stepagent.agents.llm import get_model
from stepagent.settings import settings

WEB_SEARCH = "web_search"
FETCH_URL = "fetch_url"
ANALYZE_CONTENT = "analyze_content"
FINAL_ANSWER = "final_answer"

TOOL_NAMES = (WEB_SEARCH, FETCH_URL, ANALYZE_CONTENT, FINAL_ANSWER)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
MAX_SEARCH_RESULTS = 10
MAX_FETCH_CHARS = 10000
SUSPICIOUS_PATHS = ("/admin", "/login", "/.env", "/config")
USER_AGENT = "Mozilla/5.0 (compatible; stepagent/0.1)"


def _error(message: str, code: str, **extra) -> dict:
    return {"error": message, "code": code, **extra}


def _search_tavily(query: str, max_results: int) -> dict:
    if not settings.TAVILY_API_KEY:
        return _error(
            "Web search is not configured. Please set TAVILY_API_KEY in your environment variables.",
            "MISSING_API_KEY",
        )

    response = requests.post(
        TAVILY_SEARCH_URL,
        json={
            "api_key": settings.TAVILY_API_KEY.get_secret_value(),
            "query": query,
            "max_results": max_results,
            "include_answer": False,
            "include_raw_content": False,
        },
        timeout=settings.FETCH_TIMEOUT,
    )
    if not response.ok:
        return _error(
            f"Search API returned error: {response.status_code} {response.reason}",
            "API_ERROR",
            details=response.text,
        )

    return {
        "results": [
            {
                "title": item.get("title"),
                "url": item.get("url"),
                "snippet": item.get("content"),
                "published_date": item.get("published_date"),
            }
            for item in response.json().get("results") or []
        ]
    }


def _search_duckduckgo(query: str, max_results: int) -> dict:
    with DDGS() as ddgs:
        results = list(ddgs.text(query, max_results=max_results))
    return {
        "results": [
            {
                "title": item.get("title", "No title"),
                "url": item.get("href", ""),
                "snippet": item.get("body", ""),
            }
            for item in results
        ]
    }


@tool
def web_search(query: str, max_results: int = 5) -> dict:
    """Search the web for information. Use this tool to find current information, facts, news, or answers to questions that require up-to-date knowledge. Returns a list of results with titles, URLs, and snippets."""
    max_results = max(1, min(max_results, MAX_SEARCH_RESULTS))
    try:
        if settings.SEARCH_PROVIDER == "tavily":
            found = _search_tavily(query, max_results)
        else:
            found = _search_duckduckgo(query, max_results)
    except Exception as e:
        return _error(f"Failed to perform web search: {e}", "SEARCH_FAILED")

    if "error" in found:
        return found
    if not found["results"]:
        return {"results": [], "message": f'No results found for query: "{query}"'}
    return {**found, "query": query, "count": len(found["results"])}


def _page_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    h1 = soup.find("h1")
    if h1:
        return h1.get_text(strip=True)
    return "Untitled"


def _page_text(soup: BeautifulSoup, main_only: bool) -> str:
    for tag in soup(["script", "style", "noscript", "nav", "header", "footer", "aside"]):
        tag.decompose()

    root = None
    if main_only:
        candidates = soup.select(
            "main, article, div[class*='content'], div[class*='main'], div[class*='post']"
        )
        if candidates:
            root = max(candidates, key=lambda el: len(el.get_text(" ", strip=True)))

    text = (root or soup.body or soup).get_text("\n", strip=True)
    text = re.sub(r"[ \t]+", " ", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


@tool
def fetch_url(url: str, extract_main_content: bool = True) -> dict:
    """Fetch and extract text content from a URL. Use this tool to read web pages, articles, or documentation. Navigation, scripts and other boilerplate are removed."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return _error(f"Invalid URL: {url}", "INVALID_URL")
    if any(path in parsed.path for path in SUSPICIOUS_PATHS):
        return _error(
            "Cannot fetch URLs from potentially sensitive paths", "FORBIDDEN_PATH"
        )

    try:
        response = requests.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=settings.FETCH_TIMEOUT,
            allow_redirects=True,
        )
    except requests.Timeout:
        return _error(
            f"Request timeout - the URL took too long to respond (max {settings.FETCH_TIMEOUT:g} seconds)",
            "TIMEOUT",
        )
    except requests.RequestException as e:
        return _error(f"Failed to fetch URL: {e}", "FETCH_FAILED")

    if not response.ok:
        return _error(
            f"Failed to fetch URL: {response.status_code} {response.reason}",
            "NOT_FOUND" if response.status_code == 404 else "HTTP_ERROR",
            status_code=response.status_code,
        )

    content_type = response.headers.get("Content-Type", "")
    if "text/html" not in content_type and "text/plain" not in content_type:
        return _error(
            f"Unsupported content type: {content_type}. Only HTML and plain text are supported.",
            "UNSUPPORTED_CONTENT_TYPE",
        )

    if "text/html" in content_type:
        soup = BeautifulSoup(response.text, "html.parser")
        title = _page_title(soup)
        content = _page_text(soup, extract_main_content)
    else:
        title = "Untitled"
        content = response.text.strip()

    if len(content) > MAX_FETCH_CHARS:
        content = content[:MAX_FETCH_CHARS] + "\n\n[Content truncated...]"

    return {
        "title": title,
        "content": content,
        "url": url,
        "extracted_at": datetime.now(timezone.utc).isoformat(),
        "content_length": len(content),
    }


ANALYSIS_PROMPTS = {
    "summarize": (
        "You are a helpful assistant that creates concise, accurate summaries. Focus on the main points and key information.",
        "Please provide a clear, concise summary of the following content:\n\n{content}",
    ),
    "extract_facts": (
        "You are a helpful assistant that extracts key facts, data points, and important information from text. Present information in a structured, easy-to-read format.",
        "Please extract the key facts, data points, and important information from the following content:\n\n{content}",
    ),
    "find_answers": (
        "You are a helpful assistant that finds specific information in text to answer questions. Be precise and cite relevant information from the content.",
        'Based on the following content, please answer this question: "{query}"\n\nContent:\n{content}\n\nIf the content does not contain the answer, clearly state that.',
    ),
}


@tool
async def analyze_content(
    content: str,
    analysis_type: Literal["summarize", "extract_facts", "find_answers"],
    query: Optional[str] = None,
) -> dict:
    """Analyze or process large amounts of text content: summarize articles, extract key facts, or find specific information within fetched content. 'find_answers' requires a query."""
    if analysis_type == "find_answers" and not query:
        return _error(
            "Query parameter is required when analysis_type is 'find_answers'",
            "MISSING_QUERY",
        )

    system_prompt, user_prompt = ANALYSIS_PROMPTS[analysis_type]
    try:
        prompt = ChatPromptTemplate.from_messages(
            [("system", system_prompt), ("human", user_prompt)]
        )
        chain = prompt | get_model(settings.ANALYSIS_MODEL)
        response = await chain.ainvoke({"content": content, "query": query or ""})
    except Exception as e:
        return _error(f"Failed to analyze content: {e}", "ANALYSIS_FAILED")

    analysis = response.content if isinstance(response.content, str) else str(response.content)
    key_points = [line.strip() for line in analysis.split("\n") if line.strip()][:5]
    result = {
        "analysis": analysis,
        "analysis_type": analysis_type,
        "confidence": "high",
    }
    if key_points:
        result["key_points"] = key_points
    if query:
        result["query"] = query
    return result


CONFIDENCE_NOTES = {
    "medium": "\n\n*Note: This answer is based on partially available information.*",
    "low": "\n\n*Note: This answer is based on limited available information. Further research may be needed.*",
}


@tool
def final_answer(
    answer: str,
    sources: Optional[List[str]] = None,
    confidence: Literal["high", "medium", "low"] = "high",
) -> dict:
    """Provide the final answer to the user's question after completing research and analysis. Calling this tool ends the task, so use it once a complete answer is ready."""
    valid_sources = []
    for source in sources or []:
        parsed = urlparse(source)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            valid_sources.append(source)

    formatted = answer
    if valid_sources:
        formatted += "\n\n**Sources:**\n"
        formatted += "".join(f"{i}. {source}\n" for i, source in enumerate(valid_sources, 1))
    formatted += CONFIDENCE_NOTES.get(confidence, "")

    result = {"answer": formatted, "confidence": confidence, "completed": True}
    if valid_sources:
        result["sources"] = valid_sources
    return result


def get_research_tool_registry() -> List[BaseTool]:
    """
    Get the research agent's tools.

    Returns:
        Tools in the declared vocabulary, terminal tool last.
    """
    return [web_search, fetch_url, analyze_content, final_answer]
