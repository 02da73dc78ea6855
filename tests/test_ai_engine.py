import asyncio

from ai_engine import (
    MODELS, build_analysis, clean_suggestions, domain_from_input, parse_json_response,
)
from prompts import analysis_prompt, domain_suggestion_prompt

OG_PAGE = """<html><head><meta property="og:title" content="Example Domain">
<meta property="og:image" content="https://example.com/og.png"></head>
<body><p>This domain is for use in illustrative examples.</p></body></html>"""


def test_parse_json_response_tolerates_fences():
    assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_response('["x"]') == ["x"]
    assert parse_json_response("Sure! here you go") is None
    assert parse_json_response(None) is None


def test_clean_suggestions():
    assert clean_suggestions([" Google.com ", "", 3, "GMAIL.com"]) == ["google.com", "gmail.com"]
    assert clean_suggestions(["a"] * 9) == ["a"] * 5
    assert clean_suggestions({"suggestions": ["x"]}) == []
    assert clean_suggestions(None) == []


def test_build_analysis_limits_and_fallback():
    parsed = {"title": "T" * 100, "description": "D" * 200, "tags": ["#One", "two", "three", "4", "5", "6"]}
    result = build_analysis(parsed, "Page")
    assert len(result["title"]) == 80
    assert len(result["description"]) == 150
    assert result["tags"] == ["one", "two", "three", "4", "5"]

    assert build_analysis(None, "Page Title") == {"title": "Page Title", "description": "", "tags": []}


def test_domain_from_input():
    assert domain_from_input("https://www.Gogle.com/search") == "gogle.com"
    assert domain_from_input("gogle.com") == "gogle.com"
    assert domain_from_input("  ") == ""


def test_prompts_mention_locale_and_domain():
    assert "Italian" in analysis_prompt("https://a.com", "A", "body", locale="it")
    assert "English" in analysis_prompt("https://a.com", "A", "body", locale="xx")
    assert "(no content extracted)" in analysis_prompt("https://a.com", "A", "")
    assert '"gogle.com"' in domain_suggestion_prompt("gogle.com")


def test_analyze_link_success(engine, web):
    web.pages["example.com"] = (200, OG_PAGE)
    web.claude_replies.append('{"title": "Example", "description": "Demo page", "tags": ["Web", "demo", "example"]}')

    result = asyncio.run(engine.analyze_link("https://example.com", locale="de"))

    assert result == {
        "title": "Example",
        "description": "Demo page",
        "tags": ["web", "demo", "example"],
        "thumbnail": "https://example.com/og.png",
    }
    sent = web.claude_requests()[0]
    assert sent["model"] == MODELS["haiku"]
    assert sent["max_tokens"] == 500
    assert "German" in sent["messages"][0]["content"]
    claude = [r for r in web.requests if r.url.host == "api.anthropic.com"][0]
    assert claude.headers["x-api-key"] == "test-key"
    assert claude.headers["anthropic-version"] == "2023-06-01"


def test_analyze_link_unparseable_reply_falls_back_to_page_title(engine, web):
    web.pages["example.com"] = (200, OG_PAGE)
    web.claude_replies.append("I could not do that")

    result = asyncio.run(engine.analyze_link("https://example.com"))
    assert result["title"] == "Example Domain"
    assert result["description"] == ""
    assert result["tags"] == []


def test_analyze_link_unreachable_domain(engine, web):
    result = asyncio.run(engine.analyze_link("https://gogle.com"))
    assert result == {"error": "Domain not found", "code": "DOMAIN_NOT_FOUND", "domain": "gogle.com"}
    assert web.claude_requests() == []


def test_suggest_domains_uses_caller_key(engine, web):
    web.claude_replies.append('```json\n["Google.com", " gmail.com "]\n```')

    suggestions = asyncio.run(engine.suggest_domains("gogle.com", api_key="user-key"))

    assert suggestions == ["google.com", "gmail.com"]
    claude = [r for r in web.requests if r.url.host == "api.anthropic.com"][0]
    assert claude.headers["x-api-key"] == "user-key"
    assert web.claude_requests()[0]["model"] == MODELS["sonnet"]


def test_suggest_domains_malformed_reply(engine, web):
    web.claude_replies.append("no idea, sorry")
    assert asyncio.run(engine.suggest_domains("zzzz")) == []
