"""System prompt assembly. Rebuilt before every provider call."""

from __future__ import annotations

import re
from datetime import datetime

from skribe.agent.session import ActiveDocument, ConversationSession
from skribe.agent.tools import DOCUMENT_MANAGEMENT_TOOLS, PATCH_TOOLS, ToolName, ToolSpec
from skribe.editing.patches import outline
from skribe.editing.selection import SelectionContext

# Project documents are context, not the edit target; keep them bounded
CONTEXT_DOC_CHAR_CAP = 6000

_ADVISOR = "You are Skribe, an AI strategic advisor"

SYSTEM_PROMPTS: dict[str, str] = {
    "idea_refinement": f"""{_ADVISOR} helping the user clarify and refine their idea.

Guide them through:
1. Their current idea and vision
2. The core value proposition
3. The problem being solved
4. What makes the idea unique
5. Possible pivots or enhancements

Ask one thoughtful question at a time and build on the answers. Encourage, but \
challenge assumptions when needed. When the conversation reaches a natural \
conclusion, offer to create an Idea Vision document.""",
    "market_validation": f"""{_ADVISOR} helping the user validate their market opportunity.

Guide them through:
1. Market size (TAM, SAM, SOM)
2. Key competitors and their positioning
3. Market trends and timing
4. Barriers to entry
5. Demand signals

Challenge weak points in their market thesis and surface blind spots. When \
appropriate, offer to create a Market Analysis document.""",
    "customer_persona": f"""{_ADVISOR} helping the user define their ideal customers.

Guide them through:
1. Primary and secondary segments
2. Demographics, behaviours and motivations
3. Customer journey and pain points
4. Buying criteria and decision process
5. Specific, memorable persona profiles

Push for specificity over generalisations. When ready, offer to create Customer \
Persona documents.""",
    "brand_strategy": f"""{_ADVISOR} helping the user develop their brand identity.

Guide them through:
1. Brand values and personality
2. Voice and tone
3. Positioning statements
4. Key messages and taglines
5. Visual identity direction

When appropriate, offer to create a Brand Strategy document.""",
    "business_model": f"""{_ADVISOR} helping the user design their business model.

Guide them through:
1. Revenue streams and pricing
2. Cost structure and unit economics
3. Value creation and capture
4. Key partnerships and resources
5. Scalability and sustainability

Probe financial assumptions. When ready, offer to create a Business Model document.""",
    "new_features": f"""{_ADVISOR} helping the user brainstorm and prioritise features.

Guide them through user needs, feature ideas, impact versus effort, strategic \
priority and rollout dependencies. Challenge feature bloat and scope creep. When \
appropriate, offer to create a Feature Roadmap document.""",
    "tech_stack": f"""{_ADVISOR} helping the user plan their technology architecture.

Cover requirements and constraints, build versus buy, technology choices, \
scalability and maintenance, and the team's capabilities. Give balanced \
recommendations with trade-offs. When ready, offer to create a Technical \
Architecture document.""",
    "create_prd": f"""{_ADVISOR} helping the user write a Product Requirements Document.

Capture goals and success metrics, user stories, functional and non-functional \
requirements, scope and out-of-scope items, milestones and acceptance criteria. \
When ready, offer to create a comprehensive PRD document.""",
    "go_to_market": f"""{_ADVISOR} helping the user plan their go-to-market strategy.

Cover launch goals and metrics, channels and tactics, messaging and positioning, \
acquisition strategy, timeline and resources. Prioritise high-impact, achievable \
tactics. When ready, offer to create a Go-to-Market Strategy document.""",
    "landing_page": f"""{_ADVISOR} helping the user outline landing page copy.

Work on the headline and value proposition, benefits over features, the target \
visitor and their objections, calls to action, and the page structure (hero, \
features, social proof, pricing, FAQ). Challenge vague or generic messaging. When \
ready, offer to create a Landing Page Copy document.""",
    "feedback_analysis": f"""{_ADVISOR} helping the user analyse user feedback.

Categorise submissions, find recurring themes, separate bugs from feature \
requests, and prioritise by frequency and impact. When a clear improvement \
emerges, offer to create a Feature Specification document with the problem \
statement, proposed solution, user stories, acceptance criteria and priority.""",
    "custom": f"""{_ADVISOR} helping the user build comprehensive project context.

You can answer questions about the project and its documents, give strategic \
advice, brainstorm, and create or improve documents. Be specific and actionable, \
and draw on the project context below.""",
}

# Agent categories that get the provider web-search tool
WEB_SEARCH_AGENT_TYPES: frozenset[str] = frozenset({
    "market_validation",
    "customer_persona",
    "business_model",
    "new_features",
    "tech_stack",
    "go_to_market",
    "custom",
})

DOCUMENT_EDITOR_PROMPT = """\
You are Skribe's document editing assistant. You help users refine their \
documents through precise, targeted edits.

## Your Role
- Make precise, targeted edits to the document
- Keep the document's existing style, tone and structure unless asked otherwise
- When the user has selected text, focus on that selection unless they clearly want broader changes
- Keep responses short: briefly explain what you changed"""

_EDIT_GUIDANCE: dict[ToolName, str] = {
    ToolName.REPLACE_SELECTION: "For selected text changes: use `replace_selection`. It replaces only the selected text.",
    ToolName.FIND_AND_REPLACE: "For specific text changes: use `find_and_replace` with the exact text to change.",
    ToolName.REPLACE_SECTION: "For section rewrites: use `replace_section` with the section heading.",
    ToolName.INSERT_AT_POSITION: "For new content: use `insert_at_position` ('start', 'end', 'after_heading:Heading' or 'line:N').",
    ToolName.REWRITE_DOCUMENT: "For major restructuring: use `rewrite_document`. Use sparingly and confirm with the user first.",
}


def agent_allows_web_search(agent_type: str | None) -> bool:
    return agent_type in WEB_SEARCH_AGENT_TYPES


def _fence_for(content: str) -> str:
    """A backtick fence longer than any backtick run inside ``content``."""
    longest = max((len(m) for m in re.findall(r"`+", content)), default=0)
    return "`" * max(3, longest + 1)


def _format_date(value: object) -> str:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value).date().isoformat()
        except ValueError:
            return value
    return "unknown"


def _project_documents_section(documents: list[dict], exclude_id: str | None) -> str:
    docs = [d for d in documents if d.get("id") != exclude_id]
    if not docs:
        return ""
    parts = []
    for doc in docs:
        content = doc.get("content") or ""
        if len(content) > CONTEXT_DOC_CHAR_CAP:
            content = content[:CONTEXT_DOC_CHAR_CAP] + "\n... (truncated)"
        parts.append(
            f"### {doc.get('title', 'Untitled')} ({doc.get('type', 'custom')})\n"
            f"Last updated: {_format_date(doc.get('updated_at'))}\n\n{content}"
        )
    return (
        "## Project Documents\n\n"
        "The following documents exist for this project. Reference them as needed "
        "to give context-aware advice.\n\n" + "\n\n---\n\n".join(parts)
    )


def _document_tools_section(documents: list[dict]) -> str:
    if documents:
        listing = "\n".join(
            f"- **{d.get('title', 'Untitled')}** (ID: {d.get('id')}, Type: {d.get('type', 'custom')})"
            for d in documents
        )
    else:
        listing = "No documents have been created yet for this project."
    return f"""## Available Tools

1. **create_document**: Create a new document once you have enough information. \
Always ask the user for confirmation first, for example: "I can create a [Document \
Type] document based on our discussion. Would you like me to create it now?"

2. **update_document**: Update an existing document the user wants changed. \
Reference it by ID and provide the complete new content.

### Existing Documents

{listing}

When creating or updating documents:
- Use clear, well-structured markdown with section headings
- Be comprehensive but concise
- Ask clarifying questions before creating if needed"""


def _active_document_section(document: ActiveDocument) -> str:
    fence = _fence_for(document.content)
    section = (
        "## Current Document\n"
        f"**Title:** {document.title}\n"
        f"**Type:** {document.type}\n"
        f"**ID:** {document.id}\n"
    )
    toc = outline(document.content)
    if toc:
        section += f"\n### Outline\n{toc}\n"
    section += f"\n## Document Content\n{fence}markdown\n{document.content}\n{fence}"
    return section


def _selection_section(selection: SelectionContext) -> str:
    fence = _fence_for(selection.text)
    return (
        "## User Selection\n"
        f"The user has selected the following text ({selection.describe()}):\n"
        f"{fence}\n{selection.text}\n{fence}\n\n"
        "**Important:** When the user asks for changes without specifying scope, apply "
        "them to this selection using the replace_selection tool. Only edit outside the "
        "selection if the user explicitly asks for it."
    )


def _editing_guidelines(tool_names: set[ToolName]) -> str:
    lines = [
        f"{i}. {_EDIT_GUIDANCE[name]}"
        for i, name in enumerate((n for n in _EDIT_GUIDANCE if n in tool_names), start=1)
    ]
    return (
        "## Editing Guidelines\n" + "\n".join(lines) + "\n\n"
        "The document content above always reflects your previous edits in this "
        "conversation. After editing, briefly explain what you changed."
    )


_WEB_SEARCH_GUIDANCE = """## Web Search
You can search the web for current market data, competitors, pricing and trends. \
Search when fresh, factual information would materially improve your answer, and \
cite what you find. Don't search for things you can answer from the conversation."""


def build_system_prompt(session: ConversationSession, tools: list[ToolSpec]) -> str:
    """Assemble the system prompt from the session's current state.

    Uses ``session.active_document.content`` as it is now, so edits made
    earlier in the same run are visible to the next turn.
    """
    tool_names = {spec.name for spec in tools}
    document = session.active_document
    sections: list[str] = []

    if session.agent is not None:
        agent = session.agent
        sections.append(agent.system_prompt or SYSTEM_PROMPTS.get(agent.type, SYSTEM_PROMPTS["custom"]))
        docs_section = _project_documents_section(
            session.project_documents, document.id if document else None,
        )
        if docs_section:
            sections.append(docs_section)
    else:
        sections.append(DOCUMENT_EDITOR_PROMPT)

    if tool_names & DOCUMENT_MANAGEMENT_TOOLS:
        sections.append(_document_tools_section(session.project_documents))

    if document is not None:
        sections.append(_active_document_section(document))
        if session.selection is not None:
            sections.append(_selection_section(session.selection))
        if tool_names & PATCH_TOOLS:
            sections.append(_editing_guidelines(tool_names))

    if ToolName.WEB_SEARCH in tool_names:
        sections.append(_WEB_SEARCH_GUIDANCE)

    return "\n\n".join(sections)
