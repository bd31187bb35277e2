"""TrendAware - personalized research summaries

Simple CLI for summarizing a research note locally or through a running server.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from trendaware.agents.summarizer import Summarizer
from trendaware.agents.summary_pipeline import SummaryPipeline
from trendaware.client import TrendAwareClient
from trendaware.errors import TrendAwareError
from trendaware.models.events import Frame, FrameStatus
from trendaware.models.schemas import Profile, SummaryRequest
from trendaware.services.research_service import get_research_service


def print_summary(summary: str) -> None:
    print(f"\n{'='*50}")
    print("SUMMARY:")
    print(f"{'='*50}")
    print(summary)


def print_frame(frame: Frame) -> None:
    if frame.is_heartbeat:
        return
    if frame.partial_summary:
        print(frame.partial_summary, end="", flush=True)
        return
    if frame.status is FrameStatus.ERROR:
        print(f"\n[!] Error ({frame.kind}): {frame.message}")
    elif frame.status is FrameStatus.COMPLETE:
        flag = " (fallback)" if frame.fallback else ""
        print(f"\n\n[*] {frame.message}{flag}")
        print(f"   Web research used: {bool(frame.web_research_used)}")
        if frame.record_id:
            print(f"   Record: {frame.record_id}")
    elif frame.status is not None:
        stage = f"{frame.stage}: " if frame.stage else ""
        progress = f" [{frame.progress:.0f}%]" if frame.progress is not None else ""
        print(f"[~] {stage}{frame.message}{progress}")


async def run_local(request: SummaryRequest, batch: bool) -> int:
    """Run the summary pipeline in-process."""
    pipeline = SummaryPipeline(Summarizer(), get_research_service())
    summary = ""
    streamed = False
    try:
        async for frame in pipeline.run(request, mode="batch" if batch else "stream"):
            print_frame(frame)
            streamed = streamed or bool(frame.partial_summary)
            if frame.status is FrameStatus.COMPLETE:
                summary = frame.summary or ""
    except TrendAwareError as exc:
        print(f"\n[!] Error ({exc.kind}): {exc.message}")
        return 1
    finally:
        await get_research_service().aclose()

    if not streamed:
        print_summary(summary)
    return 0


async def run_remote(
    request: SummaryRequest,
    server: str,
    batch: bool,
    token: str | None,
) -> int:
    """Run against a TrendAware server."""
    async with TrendAwareClient(server, access_token=token) as client:
        try:
            if token:
                result = await client.submit(
                    request.title, request.body, request.profile, on_frame=print_frame
                )
            elif batch:
                result = await client.summarize(request.title, request.body, request.profile)
            else:
                result = await client.generate(
                    request.title, request.body, request.profile, on_frame=print_frame
                )
        except TrendAwareError as exc:
            print(f"\n[!] Error ({exc.kind}): {exc.message}")
            return 1

    if batch or result.fallback:
        print_summary(result.summary)
    if result.fallback:
        print("[!] The summarizer was unavailable; a templated summary was returned.")
    return 0


def main():
    parser = argparse.ArgumentParser(description="TrendAware research summaries")
    parser.add_argument("--title", "-t", required=True, help="Research title")
    body = parser.add_mutually_exclusive_group(required=True)
    body.add_argument("--body", "-b", help="Research notes")
    body.add_argument("--file", "-f", type=Path, help="Read research notes from a file")
    parser.add_argument("--name", help="Display name for a personalized summary")
    parser.add_argument("--job-title", help="Job title for a personalized summary")
    parser.add_argument("--industry", help="Industry for a personalized summary")
    parser.add_argument("--batch", action="store_true", help="Generate without streaming")
    parser.add_argument("--server", "-s", help="Server URL (default: run locally)")
    parser.add_argument("--token", help="Access token; with --server, saves the research")

    args = parser.parse_args()

    text = args.file.read_text(encoding="utf-8") if args.file else args.body
    profile = None
    if args.name or args.job_title or args.industry:
        profile = Profile(
            display_name=args.name or "",
            job_title=args.job_title or "",
            industry=args.industry or "",
        )
    request = SummaryRequest(title=args.title, body=text, profile=profile)

    print(f"Research title: {args.title}")
    print("-" * 50)

    if args.server:
        code = asyncio.run(run_remote(request, args.server, args.batch, args.token))
    else:
        code = asyncio.run(run_local(request, args.batch))
    sys.exit(code)


if __name__ == "__main__":
    main()
