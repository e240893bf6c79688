"""Supabase CRUD for the question catalog and user documents. Client is cached via Streamlit."""
import logging
import os

import streamlit as st
from dotenv import load_dotenv
from supabase import create_client, Client

load_dotenv()


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(url, key)


@st.cache_resource
def get_supabase() -> Client:
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts and background storage (no Streamlit context)."""
    return _env_client()


def upsert_questions_bulk(client: Client, rows: list[dict], chunk_size: int = 200):
    """Bulk upsert into questions. Rows must include 'id'. Dedupes by id so no chunk has duplicates."""
    n_before = len(rows)
    by_id = {r["id"]: r for r in rows}
    rows = list(by_id.values())
    if len(rows) < n_before:
        logging.getLogger(__name__).info("Deduped questions by id: %d -> %d", n_before, len(rows))
    n_chunks = (len(rows) + chunk_size - 1) // chunk_size
    log = logging.getLogger(__name__)
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        chunk_num = i // chunk_size + 1
        log.info("Upserting chunk %d/%d (%d rows)", chunk_num, n_chunks, len(chunk))
        client.table("questions").upsert(chunk, on_conflict="id").execute()


def delete_questions_by_subject(client: Client, subject: str):
    """Delete all catalog rows of one subject (e.g. 'listening')."""
    client.table("questions").delete().eq("subject", subject).execute()


# --- Questions ---

def fetch_catalog_records(client: Client, subject: str, page_size: int = 1000) -> list[dict]:
    """All catalog records for a subject, paged (Supabase default limit is often 1000)."""
    all_rows = []
    offset = 0
    while True:
        r = (
            client.table("questions")
            .select("record")
            .eq("subject", subject)
            .range(offset, offset + page_size - 1)
            .execute()
        )
        data = r.data or []
        if not data:
            break
        all_rows.extend(row["record"] for row in data if isinstance(row.get("record"), dict))
        if len(data) < page_size:
            break
        offset += page_size
    return all_rows
