"""Tests for system prompt assembly."""

from __future__ import annotations

from skribe.agent.prompts import (
    CONTEXT_DOC_CHAR_CAP,
    DOCUMENT_EDITOR_PROMPT,
    SYSTEM_PROMPTS,
    agent_allows_web_search,
    build_system_prompt,
)
from skribe.agent.session import ActiveDocument, AgentProfile, ConversationSession
from skribe.agent.tools import ToolName, select_tools
from skribe.editing.selection import SelectionContext

DOC = ActiveDocument(id="doc_a", title="Plan", type="prd", content="# Plan\n\n## Pricing\n\n$10\n")


def _agent_session(**kwargs) -> ConversationSession:
    kwargs.setdefault("agent", AgentProfile(id="ag1", type="market_validation", title="Market"))
    return ConversationSession(project_id="p1", messages=[], **kwargs)


def _prompt(session: ConversationSession, **tool_kwargs) -> str:
    tool_kwargs.setdefault("has_active_document", session.active_document is not None)
    tool_kwargs.setdefault("include_document_management", session.document_management)
    return build_system_prompt(session, select_tools(**tool_kwargs))


class TestAgentMode:
    def test_agent_prompt_and_document_ids_listed(self):
        session = _agent_session(project_documents=[
            {"id": "doc_x", "title": "Vision", "type": "prd", "content": "Vision body",
             "updated_at": "2026-03-01T10:00:00+00:00"},
        ])
        prompt = _prompt(session)
        assert prompt.startswith(SYSTEM_PROMPTS["market_validation"])
        assert "(ID: doc_x, Type: prd)" in prompt
        assert "Vision body" in prompt
        assert "Last updated: 2026-03-01" in prompt

    def test_no_documents_yet(self):
        prompt = _prompt(_agent_session())
        assert "No documents have been created yet" in prompt
        assert "## Project Documents" not in prompt

    def test_custom_prompt_overrides_default(self):
        session = _agent_session(agent=AgentProfile(type="custom", system_prompt="You are a pirate."))
        assert _prompt(session).startswith("You are a pirate.")

    def test_unknown_agent_type_uses_custom_prompt(self):
        session = _agent_session(agent=AgentProfile(type="astrology"))
        assert _prompt(session).startswith(SYSTEM_PROMPTS["custom"])

    def test_context_documents_truncated(self):
        long = "x" * (CONTEXT_DOC_CHAR_CAP + 100)
        session = _agent_session(project_documents=[{"id": "d", "title": "Big", "type": "custom", "content": long}])
        prompt = _prompt(session)
        assert "x" * (CONTEXT_DOC_CHAR_CAP + 1) not in prompt
        assert "... (truncated)" in prompt

    def test_active_document_not_repeated_as_context(self):
        session = _agent_session(
            active_document=ActiveDocument(**vars(DOC)),
            project_documents=[{"id": "doc_a", "title": "Plan", "type": "prd", "content": "stale body"}],
        )
        prompt = _prompt(session)
        assert "stale body" not in prompt
        assert "(ID: doc_a, Type: prd)" in prompt


class TestCurrentDocument:
    def test_content_outline_and_id(self):
        session = _agent_session(active_document=ActiveDocument(**vars(DOC)))
        prompt = _prompt(session)
        assert "## Current Document" in prompt
        assert "**ID:** doc_a" in prompt
        assert "- Plan (line 1)\n  - Pricing (line 3)" in prompt
        assert "```markdown\n# Plan\n\n## Pricing\n\n$10\n\n```" in prompt

    def test_rebuild_shows_updated_content(self):
        session = _agent_session(active_document=ActiveDocument(**vars(DOC)))
        before = _prompt(session)
        session.active_document.content = "# Plan\n\n## Pricing\n\n$12\n"
        after = _prompt(session)
        assert "$10" in before and "$12" not in before
        assert "$12" in after and "$10" not in after

    def test_fence_longer_than_backticks_in_content(self):
        doc = ActiveDocument(id="d", title="Code", type="tech", content="Example:\n```\ncode\n```\n")
        prompt = _prompt(_agent_session(active_document=doc))
        assert "````markdown\nExample:" in prompt

    def test_guidelines_name_only_offered_tools(self):
        session = _agent_session(active_document=ActiveDocument(**vars(DOC)))
        tools = [spec for spec in select_tools(has_active_document=True)
                 if spec.name is not ToolName.REWRITE_DOCUMENT]
        prompt = build_system_prompt(session, tools)
        assert "## Editing Guidelines" in prompt
        assert "`find_and_replace`" in prompt
        assert "`rewrite_document`" not in prompt

    def test_no_guidelines_without_patch_tools(self):
        session = _agent_session(active_document=ActiveDocument(**vars(DOC)))
        prompt = build_system_prompt(session, select_tools(has_active_document=False))
        assert "## Current Document" in prompt
        assert "## Editing Guidelines" not in prompt


class TestSelection:
    def test_selection_section(self):
        session = _agent_session(
            active_document=ActiveDocument(**vars(DOC)),
            selection=SelectionContext.capture(DOC.content, 20, 23),
        )
        prompt = _prompt(session)
        assert "## User Selection" in prompt
        assert "(characters 20-23)" in prompt
        assert "```\n$10\n```" in prompt
        assert "replace_selection" in prompt

    def test_no_selection_section_without_selection(self):
        prompt = _prompt(_agent_session(active_document=ActiveDocument(**vars(DOC))))
        assert "## User Selection" not in prompt


class TestDocumentMode:
    def test_editor_prompt_without_document_tools(self):
        session = ConversationSession(
            project_id="p1", messages=[], active_document=ActiveDocument(**vars(DOC)),
            document_management=False,
        )
        prompt = _prompt(session)
        assert prompt.startswith(DOCUMENT_EDITOR_PROMPT)
        assert "create_document" not in prompt
        assert "## Current Document" in prompt


class TestWebSearch:
    def test_guidance_only_when_offered(self):
        session = _agent_session()
        assert "## Web Search" in _prompt(session, include_web_search=True)
        assert "## Web Search" not in _prompt(session)

    def test_agent_types(self):
        assert agent_allows_web_search("market_validation")
        assert agent_allows_web_search("custom")
        assert not agent_allows_web_search("brand_strategy")
        assert not agent_allows_web_search(None)
