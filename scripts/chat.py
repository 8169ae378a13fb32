#!/usr/bin/env python3
"""CLI: Manage local projects and talk to an agent or document from the terminal."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Ensure the package is importable when running as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from skribe import config
from skribe.agent.dispatcher import ToolDispatcher
from skribe.agent.events import EventType, TextChunk
from skribe.agent.loop import OrchestrationLoop
from skribe.agent.provider import create_provider
from skribe.api.conversation import AgentRequest, persist_exchange, prepare_session
from skribe.api.deps import RequestContext, open_store
from skribe.errors import RequestError, SkribeError
from skribe.storage.documents import StoreDocumentSink

LOCAL_USER = "local"


def cmd_init(args: argparse.Namespace) -> None:
    store = open_store()
    store.close()
    print(f"Initialized {config.SQLITE_PATH}")


def cmd_project(args: argparse.Namespace) -> None:
    store = open_store()
    try:
        if args.name:
            project_id = store.insert_project(args.user, args.name, args.description)
            print(project_id)
            return
        for project in store.list_projects(args.user):
            print(f"{project['id']}  {project['name']}")
    finally:
        store.close()


def cmd_agent(args: argparse.Namespace) -> None:
    store = open_store()
    try:
        title = args.title or args.type.replace("_", " ").title()
        print(store.insert_agent(args.project, args.type, title, args.system_prompt))
    finally:
        store.close()


def cmd_document(args: argparse.Namespace) -> None:
    store = open_store()
    try:
        if args.show:
            doc = store.get_document(args.show)
            if doc is None:
                print(f"Error: No document with id={args.show}.", file=sys.stderr)
                sys.exit(1)
            print(doc["content"])
            return
        if args.title:
            content = Path(args.file).read_text() if args.file else ""
            print(store.insert_document(args.project, args.title, content, args.type))
            return
        for doc in store.list_documents(args.project):
            print(f"{doc['id']}  [{doc['type']}] {doc['title']}  ({len(doc['content'])} chars)")
    finally:
        store.close()


async def _ask(args: argparse.Namespace) -> int:
    store = open_store()
    try:
        req = AgentRequest(
            agentOrDocumentId=args.target,
            projectId=args.project,
            message=args.message,
            activeDocumentId=args.document,
        )
        ctx = RequestContext(user_id=args.user, project_id=args.project, store=store)
        session, agent_id = prepare_session(ctx, req)
        loop = OrchestrationLoop(create_provider(args.provider), ToolDispatcher(StoreDocumentSink(store)))
        run = loop.start(session)
        t0 = time.perf_counter()
        try:
            async for item in run:
                if isinstance(item, TextChunk):
                    print(item.text, end="", flush=True)
                elif item.type is EventType.WEB_SEARCH_STARTED:
                    print(f"\n[searching the web{': ' + item.fields['query'] if item.fields.get('query') else ''}]")
                elif item.type is EventType.WEB_SEARCH_CITATIONS:
                    for citation in item.fields["citations"]:
                        print(f"\n[source] {citation['title'] or citation['url']} <{citation['url']}>")
                elif item.type is EventType.DOCUMENT_EDIT:
                    print(f"\n[edited {item.fields['documentId']}: {item.fields['message']}]")
                else:
                    print(f"\n[{item.type.value.lower()}: {item.fields.get('title')} ({item.fields.get('documentId')})]")
        finally:
            await run.aclose()
            persist_exchange(store, agent_id, args.message, run.result)
        result = run.result
        print(
            f"\n\n--- {result.round_trips} round trip(s), stop={result.stop_reason.value if result.stop_reason else None},"
            f" {time.perf_counter() - t0:.2f}s ---",
            file=sys.stderr,
        )
        return 0
    finally:
        store.close()


def cmd_ask(args: argparse.Namespace) -> None:
    if not config.provider_api_key(args.provider):
        print(f"Error: no API key configured for provider {args.provider or config.LLM_PROVIDER!r}.", file=sys.stderr)
        sys.exit(1)
    try:
        sys.exit(asyncio.run(_ask(args)))
    except RequestError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    except SkribeError as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(2)


def main() -> None:
    parser = argparse.ArgumentParser(description="Skribe local CLI")
    parser.add_argument("--user", default=LOCAL_USER, help=f"Acting user id (default: {LOCAL_USER})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create the SQLite database")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("project", help="Create a project, or list projects")
    p.add_argument("name", nargs="?", help="Name of the project to create")
    p.add_argument("--description", default=None)
    p.set_defaults(func=cmd_project)

    p = sub.add_parser("agent", help="Create an agent conversation in a project")
    p.add_argument("project", help="Project id")
    p.add_argument("--type", default="custom", help="Agent type (default: custom)")
    p.add_argument("--title", default=None)
    p.add_argument("--system-prompt", default=None, help="Override the agent type's prompt")
    p.set_defaults(func=cmd_agent)

    p = sub.add_parser("document", help="Create, show or list documents")
    p.add_argument("project", nargs="?", help="Project id")
    p.add_argument("--title", default=None, help="Create a document with this title")
    p.add_argument("--file", default=None, help="Initial markdown content")
    p.add_argument("--type", default="custom")
    p.add_argument("--show", default=None, metavar="DOCUMENT_ID", help="Print a document's content")
    p.set_defaults(func=cmd_document)

    p = sub.add_parser("ask", help="Send one message to an agent or document")
    p.add_argument("project", help="Project id")
    p.add_argument("target", help="Agent id, or document id for a document-editing conversation")
    p.add_argument("message")
    p.add_argument("--document", default=None, help="Active document id while talking to an agent")
    p.add_argument("--provider", default=None, choices=["anthropic", "gemini"])
    p.set_defaults(func=cmd_ask)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    if args.command == "document" and not args.project and not args.show:
        parser.error("document: project id required unless --show is given")
    args.func(args)


if __name__ == "__main__":
    main()
