# File: tests/test_scoring.py
from __future__ import annotations

import pytest

from conftest import page_html
from site_auditor.analysis.facets import analyze_document
from site_auditor.analysis.links import LinkCheckResult
from site_auditor.analysis.scoring import BEST_PRACTICES, RULES, score_facts
from site_auditor.parser.document import parse_document

HTTPS_URL = "https://example.com/"

INSECURE_SCRIPT = '<script src="http://cdn.example.com/app.js"></script>'


async def facts_for(html: str, url: str = HTTPS_URL, load_time: float = 1.0):
    return await analyze_document(parse_document(html, url), load_time)


def broken(kind: str, count: int) -> list[LinkCheckResult]:
    return [
        LinkCheckResult(f"https://example.com/{kind}{i}", False, 404, "HTTP 404", kind)
        for i in range(count)
    ]


# rule id -> (page_html overrides, url override, link results)
VIOLATIONS = {
    "title-missing": ({"title": None}, None, []),
    "title-length": ({"title": "Too short"}, None, []),
    "meta-description-missing": ({"description": None}, None, []),
    "meta-description-length": ({"description": "Short description."}, None, []),
    "h1-missing": ({"h1_count": 0}, None, []),
    "h1-multiple": ({"h1_count": 2}, None, []),
    "images-alt": ({"images": '<img src="/a.png">'}, None, []),
    "thin-content": ({"words": 50}, None, []),
    "no-https": ({}, "http://example.com/", []),
    "mixed-content": ({"body_extra": INSECURE_SCRIPT}, None, []),
    "security-headers-missing": ({"security_headers": False}, None, []),
    "canonical-missing": ({"canonical": False}, None, []),
    "viewport-missing": ({"viewport": False}, None, []),
    "open-graph-missing": ({"og": False}, None, []),
    "broken-internal-links": ({}, None, broken("internal", 1)),
    "broken-external-links": ({}, None, broken("external", 1)),
}


@pytest.mark.asyncio()
async def test_clean_page_scores_100():
    result = score_facts(await facts_for(page_html()))

    assert result.score == 100
    assert result.issues == ()
    assert result.recommendations == BEST_PRACTICES


@pytest.mark.asyncio()
async def test_missing_title_and_description_scenario():
    facts = await facts_for(page_html(title=None, description=None))
    result = score_facts(facts)

    assert result.score == 70
    assert [i.id for i in result.issues] == ["title-missing", "meta-description-missing"]
    assert result.count("critical") == 2
    assert all(i.impact == "high" and i.priority == 1 for i in result.issues)
    assert result.recommendations[: 2] == tuple(i.solution for i in result.issues)
    assert result.recommendations[2:] == BEST_PRACTICES


@pytest.mark.asyncio()
async def test_severity_follows_applied_deduction():
    one = page_html(images='<img src="/a.png">')
    five = page_html(images="".join(f'<img src="/{i}.png">' for i in range(5)))

    (issue,) = score_facts(await facts_for(one)).issues
    assert (issue.type, issue.impact, issue.priority, issue.deduction) == ("info", "low", 3, 2)

    (issue,) = score_facts(await facts_for(five)).issues
    assert (issue.type, issue.priority, issue.deduction) == ("warning", 2, 10)


@pytest.mark.asyncio()
async def test_length_and_heading_rules():
    html = page_html(title="Too short", description="Short description.", h1_count=2, words=50)
    result = score_facts(await facts_for(html))

    ids = [i.id for i in result.issues]
    assert set(ids) == {"title-length", "meta-description-length", "h1-multiple", "thin-content"}
    assert result.score == 100 - 8 - 8 - 10 - 10
    # ordered by priority then by deduction
    assert ids[:2] in (["h1-multiple", "thin-content"], ["thin-content", "h1-multiple"])


@pytest.mark.asyncio()
async def test_broken_link_caps():
    facts = await facts_for(page_html())

    result = score_facts(facts, broken("internal", 2) + broken("external", 2))
    assert result.score == 100 - 4 - 3

    capped = score_facts(facts, broken("internal", 20) + broken("external", 20))
    assert capped.score == 100 - 10 - 8
    reachable = [LinkCheckResult("https://example.com/ok", True, 200)]
    assert score_facts(facts, reachable).score == 100


@pytest.mark.asyncio()
async def test_score_never_below_zero():
    html = page_html(
        title=None,
        description=None,
        h1_count=0,
        images="".join(f'<img src="/{i}.png">' for i in range(20)),
        words=10,
        canonical=False,
        og=False,
        viewport=False,
    )
    facts = await facts_for(html, "http://example.com/")
    result = score_facts(facts, broken("internal", 10) + broken("external", 10))

    assert result.score == 0
    assert len(result.issues) == 11
    assert [i.priority for i in result.issues] == sorted(i.priority for i in result.issues)


def compose(*rule_ids: str) -> tuple[str, str, list[LinkCheckResult]]:
    kwargs: dict = {}
    url = HTTPS_URL
    links: list[LinkCheckResult] = []
    for rule_id in rule_ids:
        page, rule_url, rule_links = VIOLATIONS[rule_id]
        kwargs.update(page)
        url = rule_url or url
        links += rule_links
    return page_html(**kwargs), url, links


async def score_of(*rule_ids: str):
    html, url, links = compose(*rule_ids)
    return score_facts(await facts_for(html, url), links)


def conflicting(a: str, b: str) -> bool:
    return bool(set(VIOLATIONS[a][0]) & set(VIOLATIONS[b][0]))


def test_every_rule_has_a_violation_case():
    assert set(VIOLATIONS) == {rule.id for rule in RULES}


@pytest.mark.asyncio()
@pytest.mark.parametrize("rule_id", [rule.id for rule in RULES])
async def test_single_violation_triggers_only_its_rule(rule_id):
    result = await score_of(rule_id)

    assert [i.id for i in result.issues] == [rule_id]
    # half-up rounding: one broken external link (-1.5) scores 99
    assert result.score == int(100 - result.issues[0].deduction + 0.5)


@pytest.mark.asyncio()
@pytest.mark.parametrize("rule_id", [rule.id for rule in RULES])
async def test_adding_a_violation_never_raises_the_score(rule_id):
    bases = [()] + [(other,) for other in VIOLATIONS if not conflicting(rule_id, other)]
    for base in bases:
        before = (await score_of(*base)).score
        after = (await score_of(*base, rule_id)).score
        assert 0 <= after <= before <= 100, (base, rule_id)


@pytest.mark.asyncio()
async def test_mixed_content_is_scored():
    hardened = await facts_for(page_html())
    mixed = await facts_for(page_html(body_extra=INSECURE_SCRIPT))

    (issue,) = score_facts(mixed).issues
    assert (issue.id, issue.type, issue.deduction) == ("mixed-content", "warning", 10)
    assert issue.solution in score_facts(mixed).recommendations
    assert score_facts(mixed).score < score_facts(hardened).score
    assert mixed.security.score == 85
    assert hardened.security.score == 100


@pytest.mark.asyncio()
async def test_missing_security_headers_on_https_page():
    facts = await facts_for(page_html(security_headers=False))
    result = score_facts(facts)

    (issue,) = result.issues
    assert (issue.id, issue.type, issue.deduction) == ("security-headers-missing", "info", 4)
    assert "Content-Security-Policy" in issue.description
    assert result.score == 96
    assert facts.security.score == 80


@pytest.mark.asyncio()
async def test_plain_http_page_pays_only_for_https():
    facts = await facts_for(page_html(security_headers=False), "http://example.com/")
    result = score_facts(facts)

    assert [i.id for i in result.issues] == ["no-https"]
    assert facts.security.score == 100 - 30 - 4 * 5


@pytest.mark.asyncio()
async def test_scoring_is_deterministic():
    facts = await facts_for(page_html(title=None, images='<img src="/a.png">'))
    links = broken("external", 3)
    assert score_facts(facts, links) == score_facts(facts, links)
