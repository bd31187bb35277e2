from __future__ import annotations

import asyncio
from typing import Any

from supabase import Client, create_client

from trendaware.config import settings
from trendaware.errors import PersistenceError
from trendaware.services import logger as log_service


def get_client() -> Client:
    return create_client(settings.supabase_url, settings.supabase_anon_key)


_client: Client | None = None


def client() -> Client:
    global _client
    if _client is None:
        _client = get_client()
    return _client


async def _execute(query: Any) -> Any:
    """Run blocking Supabase query execution in a worker thread."""
    return await asyncio.to_thread(query.execute)


def _first_row(result: Any, table: str) -> dict[str, Any]:
    rows = getattr(result, "data", None) or []
    if not rows or not isinstance(rows[0], dict):
        raise RuntimeError(f"insert into {table} returned no row")
    return rows[0]


# --- Auth ---


async def get_user_id(access_token: str) -> str | None:
    """Resolve a Supabase access token to its user id, or None if invalid."""
    response = await asyncio.to_thread(client().auth.get_user, access_token)
    user = getattr(response, "user", None)
    user_id = getattr(user, "id", None)
    return str(user_id) if user_id else None


# --- Research ---


async def create_research(user_id: str, title: str, body: str) -> dict[str, Any]:
    row = {"user_id": user_id, "title": title, "body": body}
    result = await _execute(client().table(settings.research_table).insert(row))
    return _first_row(result, settings.research_table)


async def create_summary(
    research_id: str,
    content: str,
    *,
    web_research_used: bool,
    fallback: bool,
) -> dict[str, Any]:
    row = {
        "research_id": research_id,
        "content": content,
        "web_research_used": web_research_used,
        "fallback": fallback,
    }
    result = await _execute(client().table(settings.summaries_table).insert(row))
    return _first_row(result, settings.summaries_table)


async def delete_research(research_id: str) -> None:
    await _execute(client().table(settings.research_table).delete().eq("id", research_id))


async def save_research(
    user_id: str,
    title: str,
    body: str,
    summary: str,
    *,
    web_research_used: bool,
    fallback: bool,
) -> dict[str, Any]:
    """Create the research record and its summary as one unit.

    If the summary insert fails the parent record is removed again, so a
    caller never sees research without its summary.
    """
    if not summary.strip():
        raise PersistenceError("Refusing to save an empty summary")

    try:
        research = await create_research(user_id, title, body)
        research_id = str(research["id"])
    except Exception as exc:
        log_service.log_db_operation(
            operation="insert",
            table=settings.research_table,
            status="failed",
            error=str(exc),
        )
        raise PersistenceError(details={"table": settings.research_table}) from exc

    try:
        summary_row = await create_summary(
            research_id,
            summary,
            web_research_used=web_research_used,
            fallback=fallback,
        )
    except Exception as exc:
        log_service.log_db_operation(
            operation="insert",
            table=settings.summaries_table,
            status="failed",
            details=f"research_id={research_id}",
            error=str(exc),
        )
        try:
            await delete_research(research_id)
        except Exception as cleanup_exc:
            log_service.log_db_operation(
                operation="delete",
                table=settings.research_table,
                status="failed",
                details=f"orphaned research_id={research_id}",
                error=str(cleanup_exc),
            )
        raise PersistenceError(details={"table": settings.summaries_table}) from exc

    log_service.log_db_operation(
        operation="insert",
        table=f"{settings.research_table}+{settings.summaries_table}",
        status="success",
        details=f"research_id={research_id}",
    )
    return {"research": research, "summary": summary_row}
