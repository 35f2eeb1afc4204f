#!/usr/bin/env python3
"""
Seed the knowledge base for demos or tests.

Creates the Milvus collection (if missing), adds the tenant partition, and inserts
sample HR / IT Q&A records. Use --skip-existing to do nothing when the tenant
already has records.

Run from project root:

    python scripts/seed_knowledge.py
    python scripts/seed_knowledge.py --tenant tenant2 --skip-existing
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Project root on path so "agentic_rag" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from agentic_rag.core.config import KNOWLEDGE_TENANT, LOG_LEVEL
from agentic_rag.core.errors import ServiceUnavailableError, StoreError
from agentic_rag.schemas.contract import SourceRecord
from agentic_rag.services.vector_store import MilvusKnowledgeStore

SEED_RECORDS = [
    SourceRecord(
        file_id="HR-001",
        question="What is the company leave policy?",
        answer=(
            "Employees are entitled to 20 days of paid annual leave per year. Leave must be requested "
            "at least 2 weeks in advance through the HR portal. Unused leave can be carried forward up to "
            "5 days to the next year. Additional leave types include sick leave (10 days), personal leave "
            "(3 days), and parental leave (up to 3 months)."
        ),
    ),
    SourceRecord(
        file_id="HR-002",
        question="What is the remote work policy?",
        answer=(
            "Employees can work remotely up to 3 days per week after completing their probation period. "
            "Remote work requests must be approved by the direct manager and logged in the attendance "
            "system. Employees must keep core working hours (10 AM - 3 PM in their timezone). A home "
            "office setup allowance of $500 is provided annually."
        ),
    ),
    SourceRecord(
        file_id="HR-003",
        question="What is the dress code policy?",
        answer=(
            "The company follows a smart casual dress code. Jeans are acceptable Monday through Thursday. "
            "Business formal attire is required for client meetings and presentations. Fridays are casual "
            "dress days."
        ),
    ),
    SourceRecord(
        file_id="IT-001",
        question="How do I reset my company password?",
        answer=(
            "Visit the IT self-service portal and click \"Reset Password\". You will receive a verification "
            "code via email and SMS. Passwords must be at least 12 characters with uppercase, lowercase, "
            "numbers, and symbols, and expire every 90 days. For issues, contact IT support at ext. 4357."
        ),
    ),
    SourceRecord(
        file_id="HR-004",
        question="What are the employee wellness benefits?",
        answer=(
            "All employees have gym membership reimbursement up to $50/month, mental health counseling "
            "(8 sessions/year covered 100%), and annual health checkups. Yoga classes run every Tuesday and "
            "Thursday at 5 PM. Wellness days can be used for medical appointments without deducting leave."
        ),
    ),
]


async def seed(tenant: str, skip_existing: bool) -> int:
    store = MilvusKnowledgeStore()
    await store.ensure_collection(tenant)
    if skip_existing:
        existing = await store.fetch_all(tenant, 1)
        if existing:
            print(f"Tenant {tenant!r} already has records; skipping.")
            return 0
    return await store.insert_records(tenant, SEED_RECORDS)


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the knowledge base with sample Q&A records.")
    parser.add_argument("--tenant", default=KNOWLEDGE_TENANT, help="Tenant (partition) to seed.")
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Do nothing if the tenant already has records.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=LOG_LEVEL)

    try:
        inserted = asyncio.run(seed(args.tenant, args.skip_existing))
    except (StoreError, ServiceUnavailableError) as e:
        print(f"Seeding failed: {e}", file=sys.stderr)
        sys.exit(1)

    for record in SEED_RECORDS[: inserted]:
        print(f"  added: {record.file_id} {record.question}")
    print(f"Done. Seeded {inserted} records into tenant {args.tenant!r}.")


if __name__ == "__main__":
    main()
