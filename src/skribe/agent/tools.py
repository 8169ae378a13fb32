"""Tool catalog: names, provider-facing JSON schemas and argument models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from skribe import config


class ToolName(str, Enum):
    """Every tool the model can be offered. Closed set."""

    CREATE_DOCUMENT = "create_document"
    UPDATE_DOCUMENT = "update_document"
    REPLACE_SELECTION = "replace_selection"
    INSERT_AT_POSITION = "insert_at_position"
    REPLACE_SECTION = "replace_section"
    FIND_AND_REPLACE = "find_and_replace"
    REWRITE_DOCUMENT = "rewrite_document"
    WEB_SEARCH = "web_search"

    @classmethod
    def parse(cls, name: str) -> ToolName | None:
        try:
            return cls(name)
        except ValueError:
            return None


PATCH_TOOLS: frozenset[ToolName] = frozenset({
    ToolName.REPLACE_SELECTION,
    ToolName.INSERT_AT_POSITION,
    ToolName.REPLACE_SECTION,
    ToolName.FIND_AND_REPLACE,
    ToolName.REWRITE_DOCUMENT,
})

DOCUMENT_MANAGEMENT_TOOLS: frozenset[ToolName] = frozenset({
    ToolName.CREATE_DOCUMENT,
    ToolName.UPDATE_DOCUMENT,
})

WEB_SEARCH_TOOL_TYPE = "web_search_20250305"


class DocumentType(str, Enum):
    PRD = "prd"
    PERSONA = "persona"
    MARKET = "market"
    BRAND = "brand"
    BUSINESS = "business"
    FEATURE = "feature"
    TECH = "tech"
    GTM = "gtm"
    LANDING = "landing"
    CUSTOM = "custom"


AGENT_TYPE_TO_DOC_TYPE: dict[str, DocumentType] = {
    "idea_refinement": DocumentType.PRD,
    "product_refinement": DocumentType.PRD,
    "market_validation": DocumentType.MARKET,
    "customer_persona": DocumentType.PERSONA,
    "brand_strategy": DocumentType.BRAND,
    "business_model": DocumentType.BUSINESS,
    "new_features": DocumentType.FEATURE,
    "tech_stack": DocumentType.TECH,
    "create_prd": DocumentType.PRD,
    "go_to_market": DocumentType.GTM,
    "landing_page": DocumentType.LANDING,
    "feedback_analysis": DocumentType.FEATURE,
    "custom": DocumentType.CUSTOM,
}


def coerce_document_type(value: str | None, agent_type: str | None = None) -> DocumentType:
    """Map a model-supplied type to a DocumentType.

    Unknown or missing values fall back to the agent's default type, then
    to ``custom``.
    """
    if value:
        try:
            return DocumentType(value.strip().lower())
        except ValueError:
            pass
    if agent_type and agent_type in AGENT_TYPE_TO_DOC_TYPE:
        return AGENT_TYPE_TO_DOC_TYPE[agent_type]
    return DocumentType.CUSTOM


# ── Argument models (model output is untrusted) ──


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CreateDocumentArgs(ToolArgs):
    title: str = Field(min_length=1)
    content: str
    type: str | None = None


class UpdateDocumentArgs(ToolArgs):
    document_id: str = Field(min_length=1)
    title: str | None = None
    content: str


class ReplaceSelectionArgs(ToolArgs):
    new_text: str
    explanation: str | None = None


class InsertAtPositionArgs(ToolArgs):
    content: str
    position: str


class ReplaceSectionArgs(ToolArgs):
    heading: str
    content: str


class FindAndReplaceArgs(ToolArgs):
    find: str
    replace: str
    replace_all: bool = False


class RewriteDocumentArgs(ToolArgs):
    content: str
    summary: str | None = None


class WebSearchArgs(ToolArgs):
    query: str | None = None


@dataclass(frozen=True)
class ToolSpec:
    """One tool: what the provider sees plus how its arguments are validated."""

    name: ToolName
    description: str
    input_schema: dict | None
    args_model: type[ToolArgs]
    requires_document: bool = False

    def to_anthropic(self) -> dict:
        return {
            "name": self.name.value,
            "description": self.description,
            "input_schema": self.input_schema,
        }


_DOC_TYPE_VALUES = [t.value for t in DocumentType]

TOOL_SPECS: dict[ToolName, ToolSpec] = {
    ToolName.CREATE_DOCUMENT: ToolSpec(
        name=ToolName.CREATE_DOCUMENT,
        description=(
            "Create a new document for the project. Use this once the conversation has "
            "gathered enough information for a comprehensive document. The document is "
            "saved to the project where the user can view and edit it."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "title": {
                    "type": "string",
                    "description": "Document title (e.g. 'Product Vision', 'Market Analysis').",
                },
                "content": {
                    "type": "string",
                    "description": "Full markdown content, with headings and lists as appropriate.",
                },
                "type": {
                    "type": "string",
                    "enum": _DOC_TYPE_VALUES,
                    "description": "The kind of document being created.",
                },
            },
            "required": ["title", "content", "type"],
        },
        args_model=CreateDocumentArgs,
    ),
    ToolName.UPDATE_DOCUMENT: ToolSpec(
        name=ToolName.UPDATE_DOCUMENT,
        description=(
            "Update an existing document by ID with its complete new content. Use when "
            "the user wants to revise or extend a document listed under Existing Documents."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "document_id": {
                    "type": "string",
                    "description": "ID of the document to update.",
                },
                "title": {
                    "type": "string",
                    "description": "New title. Only include when changing it.",
                },
                "content": {
                    "type": "string",
                    "description": "The complete updated markdown content.",
                },
            },
            "required": ["document_id", "content"],
        },
        args_model=UpdateDocumentArgs,
    ),
    ToolName.REPLACE_SELECTION: ToolSpec(
        name=ToolName.REPLACE_SELECTION,
        description=(
            "Replace the text the user currently has selected. Only use when a selection "
            "is shown in the prompt."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "new_text": {
                    "type": "string",
                    "description": "Text that replaces the selection.",
                },
                "explanation": {
                    "type": "string",
                    "description": "One-sentence explanation of the change.",
                },
            },
            "required": ["new_text"],
        },
        args_model=ReplaceSelectionArgs,
        requires_document=True,
    ),
    ToolName.INSERT_AT_POSITION: ToolSpec(
        name=ToolName.INSERT_AT_POSITION,
        description=(
            "Insert new markdown at a position in the document: 'start', 'end', "
            "'after_heading:HeadingText' or 'line:N' (before line N, 1-based)."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": "The markdown to insert.",
                },
                "position": {
                    "type": "string",
                    "description": "'start', 'end', 'after_heading:HeadingText' or 'line:N'.",
                },
            },
            "required": ["content", "position"],
        },
        args_model=InsertAtPositionArgs,
        requires_document=True,
    ),
    ToolName.REPLACE_SECTION: ToolSpec(
        name=ToolName.REPLACE_SECTION,
        description=(
            "Replace a section: the heading and everything up to the next heading of the "
            "same or higher level. If the new content starts with a heading it replaces the "
            "heading too; otherwise only the section body is replaced."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "heading": {
                    "type": "string",
                    "description": "Text of the section heading, e.g. 'Pricing' or '## Pricing'.",
                },
                "content": {
                    "type": "string",
                    "description": "New markdown for the section.",
                },
            },
            "required": ["heading", "content"],
        },
        args_model=ReplaceSectionArgs,
        requires_document=True,
    ),
    ToolName.FIND_AND_REPLACE: ToolSpec(
        name=ToolName.FIND_AND_REPLACE,
        description=(
            "Find exact text (case-sensitive, not a regex) and replace it. Replaces the "
            "first occurrence unless replace_all is true."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "find": {
                    "type": "string",
                    "description": "Exact text to find.",
                },
                "replace": {
                    "type": "string",
                    "description": "Replacement text.",
                },
                "replace_all": {
                    "type": "boolean",
                    "description": "Replace every occurrence (default false: first only).",
                },
            },
            "required": ["find", "replace"],
        },
        args_model=FindAndReplaceArgs,
        requires_document=True,
    ),
    ToolName.REWRITE_DOCUMENT: ToolSpec(
        name=ToolName.REWRITE_DOCUMENT,
        description=(
            "Replace the entire document. Only for major restructuring the user has "
            "confirmed; prefer the targeted tools otherwise."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": "The complete new document in markdown.",
                },
                "summary": {
                    "type": "string",
                    "description": "Short summary of the major changes.",
                },
            },
            "required": ["content"],
        },
        args_model=RewriteDocumentArgs,
        requires_document=True,
    ),
    ToolName.WEB_SEARCH: ToolSpec(
        name=ToolName.WEB_SEARCH,
        description="Provider-executed web search.",
        input_schema=None,
        args_model=WebSearchArgs,
    ),
}


def select_tools(
    *,
    has_active_document: bool,
    include_document_management: bool = True,
    include_web_search: bool = False,
) -> list[ToolSpec]:
    """Partition the catalog for one provider call.

    Patch tools are only offered while a document is open for editing.
    """
    selected: list[ToolSpec] = []
    if include_document_management:
        selected += [TOOL_SPECS[ToolName.CREATE_DOCUMENT], TOOL_SPECS[ToolName.UPDATE_DOCUMENT]]
    if has_active_document:
        selected += [spec for spec in TOOL_SPECS.values() if spec.name in PATCH_TOOLS]
    if include_web_search:
        selected.append(TOOL_SPECS[ToolName.WEB_SEARCH])
    return selected


def anthropic_tool_params(specs: list[ToolSpec], web_search_max_uses: int | None = None) -> list[dict]:
    """Render specs in the Anthropic Messages API ``tools`` shape."""
    params: list[dict] = []
    for spec in specs:
        if spec.name is ToolName.WEB_SEARCH:
            params.append({
                "type": WEB_SEARCH_TOOL_TYPE,
                "name": ToolName.WEB_SEARCH.value,
                "max_uses": web_search_max_uses or config.WEB_SEARCH_MAX_USES,
            })
        else:
            params.append(spec.to_anthropic())
    return params
