"""Run a knowledge capture interview in the terminal.

Talks to a running Expertise Engine API (AI_SERVICE_URL) and writes to the
configured Supabase project.

Usage:
    python scripts/interview_cli.py --user-id <uuid> --title "Renewal rescue" \
        --description "How we saved the Acme renewal after their champion left mid-cycle"

    python scripts/interview_cli.py --user-id <uuid> --resume <interview_id>

Type your answers at the prompt. "/end" generates the document, "/quit" leaves
the interview in progress so it can be resumed later.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from expertise_engine.core.background import drain_background
from expertise_engine.core.interview_session import InterviewSession, InterviewSessionConfig, SessionPhase
from expertise_engine.core.schemas_interviews import DocumentType, InterviewContext, TurnRole
from expertise_engine.db.record_store import SupabaseRecordStore
from expertise_engine.db.supabase_client import get_supabase
from expertise_engine.services.ai_client import HttpAIClient


def _print_token(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _report(outcome) -> bool:
    if outcome.ok:
        return True
    print(f"\n[{outcome.kind}] {outcome.message}")
    return False


async def run_interview(args: argparse.Namespace) -> int:
    store = SupabaseRecordStore(get_supabase())
    async with HttpAIClient.from_settings() as ai_client:
        session = InterviewSession(
            store,
            ai_client,
            user_id=args.user_id,
            config=InterviewSessionConfig.from_settings(),
            on_token=_print_token,
        )

        if args.resume:
            outcome = await session.resume(
                args.resume,
                expert_name=args.expert_name,
                expert_role=args.role,
                years_of_experience=args.years,
            )
            if not _report(outcome):
                return 1
            for turn in outcome.value:
                speaker = "You" if turn.role == TurnRole.USER else "Interviewer"
                print(f"{speaker}: {turn.content}\n")
        else:
            context = InterviewContext(
                document_type=DocumentType(args.type),
                title=args.title,
                function_area=args.function_area,
                description=args.description,
                expert_name=args.expert_name,
                expert_role=args.role,
                years_of_experience=args.years,
            )
            print("Interviewer: ", end="")
            if not _report(await session.start(context)):
                return 1
            print()

        print(f"Interview {session.session_id} ({session.phase.value})")
        while session.phase == SessionPhase.CONVERSING:
            try:
                line = input("\nYou: ").strip()
            except EOFError:
                line = "/quit"
            if line == "/quit":
                print("Interview left in progress.")
                return 0
            if line == "/end":
                print("Writing the document...")
                outcome = await session.finalize()
                if _report(outcome):
                    print(f"Document {outcome.value.id} created.")
                continue
            if not line:
                continue

            print("\nInterviewer: ", end="")
            _report(await session.send_user_turn(line))
            print(f"\n(progress {session.progress:.0%})")

        await drain_background()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a knowledge capture interview")
    parser.add_argument("--user-id", required=True, help="Profile id of the expert")
    parser.add_argument("--resume", help="Interview id to continue")
    parser.add_argument(
        "--type",
        default=DocumentType.CASE_STUDY.value,
        choices=[t.value for t in DocumentType],
    )
    parser.add_argument("--title", default="")
    parser.add_argument("--function-area", default="")
    parser.add_argument("--description", default="")
    parser.add_argument("--expert-name", default="Expert")
    parser.add_argument("--role", default="")
    parser.add_argument("--years", type=int, default=0)
    args = parser.parse_args()

    if not args.resume and not args.description:
        parser.error("--description is required unless --resume is given")

    sys.exit(asyncio.run(run_interview(args)))


if __name__ == "__main__":
    main()
