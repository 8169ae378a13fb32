"""Tests for tool dispatch: argument validation, side effects and notifications."""

from __future__ import annotations

import json

import pytest

from skribe.agent.dispatcher import ToolDispatcher
from skribe.agent.events import EventType
from skribe.agent.session import ActiveDocument, AgentProfile, ConversationSession
from skribe.editing.selection import SelectionContext
from tests.helpers import FakeSink

CONTENT = "# Plan\n\nOld price: $10.\n"


def _sink() -> FakeSink:
    return FakeSink([
        {"id": "doc1", "project_id": "p1", "title": "Plan", "content": CONTENT, "type": "prd"},
        {"id": "other", "project_id": "p2", "title": "Theirs", "content": "x", "type": "custom"},
    ])


def _session(with_document: bool = True, agent_type: str = "market_validation", **kwargs) -> ConversationSession:
    active = ActiveDocument(id="doc1", title="Plan", type="prd", content=CONTENT) if with_document else None
    return ConversationSession(
        project_id="p1",
        messages=[],
        agent=AgentProfile(id="ag1", type=agent_type),
        active_document=active,
        **kwargs,
    )


async def _dispatch(sink, session, name, args):
    raw = args if isinstance(args, str) else json.dumps(args)
    return await ToolDispatcher(sink).dispatch(session, name, raw)


class TestInputHandling:
    @pytest.mark.asyncio
    async def test_malformed_json(self):
        sink = _sink()
        outcome = await _dispatch(sink, _session(), "update_document", '{"document_id": "doc1", "content": ')
        assert outcome.is_error
        assert outcome.content.startswith("Error: Failed to parse tool input - ")
        assert outcome.parsed_input == {}
        assert sink.updates == []

    @pytest.mark.asyncio
    async def test_non_object_json(self):
        outcome = await _dispatch(_sink(), _session(), "find_and_replace", "[1, 2]")
        assert outcome.is_error
        assert outcome.content == "Error: Invalid tool input - expected a JSON object, got list"

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        outcome = await _dispatch(_sink(), _session(), "delete_everything", {"really": True})
        assert outcome.is_error
        assert outcome.content == "Unknown tool: delete_everything"
        assert outcome.parsed_input == {"really": True}

    @pytest.mark.asyncio
    async def test_missing_required_field(self):
        sink = _sink()
        outcome = await _dispatch(sink, _session(), "find_and_replace", {"find": "Old"})
        assert outcome.is_error
        assert outcome.content.startswith("Error: Invalid tool input - replace:")
        assert sink.updates == []

    @pytest.mark.asyncio
    async def test_wrong_field_type(self):
        outcome = await _dispatch(_sink(), _session(), "create_document", {"title": "T", "content": 5})
        assert outcome.is_error
        assert "content" in outcome.content

    @pytest.mark.asyncio
    async def test_empty_input_validated(self):
        outcome = await _dispatch(_sink(), _session(), "rewrite_document", "")
        assert outcome.is_error
        assert "content" in outcome.content


class TestDocumentManagement:
    @pytest.mark.asyncio
    async def test_create_document(self):
        sink = _sink()
        session = _session()
        outcome = await _dispatch(sink, session, "create_document",
                                  {"title": "Market Analysis", "content": "# Market", "type": "market"})
        assert not outcome.is_error
        assert outcome.content.startswith('Document "Market Analysis" created successfully with ID: doc3.')
        (note,) = outcome.notifications
        assert note.type is EventType.DOCUMENT_CREATED
        assert note.fields == {"documentId": "doc3", "title": "Market Analysis", "documentType": "market"}
        assert sink.creates[0]["project_id"] == "p1"
        assert session.project_documents[-1]["id"] == "doc3"

    @pytest.mark.asyncio
    async def test_create_coerces_unknown_type_from_agent(self):
        sink = _sink()
        outcome = await _dispatch(sink, _session(agent_type="tech_stack"), "create_document",
                                  {"title": "Stack", "content": "x", "type": "diagram"})
        assert sink.creates[0]["type"] == "tech"
        assert outcome.notifications[0].fields["documentType"] == "tech"

    @pytest.mark.asyncio
    async def test_update_active_document_refreshes_session(self):
        sink = _sink()
        session = _session()
        outcome = await _dispatch(sink, session, "update_document",
                                  {"document_id": "doc1", "title": "Plan v2", "content": "# New"})
        assert outcome.content == 'Document "Plan v2" updated successfully.'
        assert outcome.notifications[0].type is EventType.DOCUMENT_UPDATED
        assert session.active_document.content == "# New"
        assert session.active_document.title == "Plan v2"
        assert sink.documents["doc1"]["content"] == "# New"

    @pytest.mark.asyncio
    async def test_update_missing_document(self):
        sink = _sink()
        outcome = await _dispatch(sink, _session(), "update_document",
                                  {"document_id": "nope", "content": "x"})
        assert outcome.is_error
        assert outcome.content == "Error: Document nope not found in this project"
        assert outcome.notifications == []

    @pytest.mark.asyncio
    async def test_update_document_in_other_project(self):
        sink = _sink()
        outcome = await _dispatch(sink, _session(), "update_document",
                                  {"document_id": "other", "content": "mine now"})
        assert outcome.is_error
        assert sink.documents["other"]["content"] == "x"


class TestPatchTools:
    @pytest.mark.asyncio
    async def test_find_and_replace_persists_and_notifies(self):
        sink = _sink()
        session = _session()
        outcome = await _dispatch(sink, session, "find_and_replace", {"find": "$10", "replace": "$12"})
        assert not outcome.is_error
        assert outcome.content == "Replaced 1 occurrence of '$10' with '$12'"
        assert session.active_document.content == "# Plan\n\nOld price: $12.\n"
        assert sink.updates == [{"id": "doc1", "content": "# Plan\n\nOld price: $12.\n", "title": None}]
        (note,) = outcome.notifications
        assert note.type is EventType.DOCUMENT_EDIT
        assert note.fields["documentId"] == "doc1"
        assert note.fields["content"] == "# Plan\n\nOld price: $12.\n"

    @pytest.mark.asyncio
    async def test_find_and_replace_miss_leaves_document(self):
        sink = _sink()
        session = _session()
        outcome = await _dispatch(sink, session, "find_and_replace", {"find": "ZZZ", "replace": "Y"})
        assert outcome.is_error
        assert outcome.content.startswith("Error: ")
        assert "not found" in outcome.content
        assert session.active_document.content == CONTENT
        assert sink.updates == []
        assert outcome.notifications == []

    @pytest.mark.asyncio
    async def test_patch_without_open_document(self):
        sink = _sink()
        outcome = await _dispatch(sink, _session(with_document=False), "rewrite_document", {"content": "# X"})
        assert outcome.is_error
        assert outcome.content.startswith("rewrite_document is unavailable: no document is open")
        assert sink.updates == []

    @pytest.mark.asyncio
    async def test_replace_selection(self):
        sink = _sink()
        session = _session(selection=SelectionContext.capture(CONTENT, 8, 17))
        outcome = await _dispatch(sink, session, "replace_selection",
                                  {"new_text": "New price", "explanation": "Reworded"})
        assert outcome.content == "Reworded"
        assert session.active_document.content == "# Plan\n\nNew price: $10.\n"

    @pytest.mark.asyncio
    async def test_replace_selection_without_selection(self):
        outcome = await _dispatch(_sink(), _session(), "replace_selection", {"new_text": "x"})
        assert outcome.is_error

    @pytest.mark.asyncio
    async def test_insert_then_edit_sees_new_content(self):
        sink = _sink()
        session = _session()
        dispatcher = ToolDispatcher(sink)
        await dispatcher.dispatch(session, "insert_at_position",
                                  json.dumps({"content": "## FAQ", "position": "end"}))
        outcome = await dispatcher.dispatch(session, "find_and_replace",
                                            json.dumps({"find": "## FAQ", "replace": "## Questions"}))
        assert not outcome.is_error
        assert session.active_document.content.endswith("## Questions\n")
        assert len(sink.updates) == 2

    @pytest.mark.asyncio
    async def test_sink_failure_becomes_error_result(self):
        sink = _sink()
        session = _session()
        session.active_document.id = "vanished"
        outcome = await _dispatch(sink, session, "rewrite_document", {"content": "# X"})
        assert outcome.is_error
        assert outcome.content == "Error: Document vanished not found in this project"
        assert session.active_document.content == CONTENT


@pytest.mark.asyncio
async def test_web_search_client_call_is_informational():
    outcome = await _dispatch(_sink(), _session(), "web_search", {"query": "tam"})
    assert not outcome.is_error
    assert "provider" in outcome.content
