"""Import a TCF catalog (.json or .jsonl): validate records, then write normalized JSON or bulk UPSERT into questions."""
import json
import argparse
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from src.repository import parse_record, question_key

logger = logging.getLogger(__name__)

SUBJECTS = ("listening", "reading")


def read_records(path: Path) -> Iterator[Dict]:
    """Yield raw records from a JSON array, a {"questions": [...]} wrapper, or JSONL."""
    if path.suffix == ".jsonl":
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    raw = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping invalid JSON line in {path}")
                    continue
                if isinstance(raw, dict):
                    yield raw
        return
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("questions", [])
    for raw in data if isinstance(data, list) else []:
        if isinstance(raw, dict):
            yield raw


def to_row(raw: Dict, subject: str) -> Optional[Dict]:
    """One questions row, or None if the record would not load in the app."""
    question = parse_record(raw)
    if question is None:
        return None
    record = dict(raw)
    record.setdefault("question_ID", question.id)
    record["weight_points"] = question.weight
    return {
        "id": f"{subject}:{question.id}",
        "subject": subject,
        "weight_points": question.weight,
        "record": record,
    }


def load_and_transform(path: Path, subject: str) -> List[Dict]:
    rows = []
    skipped = 0
    for raw in read_records(path):
        row = to_row(raw, subject)
        if row is None:
            skipped += 1
            logger.debug(f"Skipping malformed record {question_key(raw)}")
            continue
        rows.append(row)
    if skipped:
        logger.warning(f"Skipped {skipped} malformed records from {path}")
    return rows


def summarize(rows: List[Dict]) -> Dict[int, int]:
    counts: Dict[int, int] = {}
    for row in rows:
        counts[row["weight_points"]] = counts.get(row["weight_points"], 0) + 1
    return dict(sorted(counts.items()))


def write_normalized(rows: List[Dict], output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as f:
        json.dump([row["record"] for row in rows], f, ensure_ascii=False, indent=2)


def run_import(path: Path, subject: str, output: Optional[Path] = None, chunk_size: int = 200, dry_run: bool = False, replace: bool = False):
    if not path.exists():
        raise FileNotFoundError(f"Catalog not found: {path}")
    rows = load_and_transform(path, subject)
    print(f"{len(rows)} valid {subject} questions, per weight: {summarize(rows)}")
    if dry_run:
        print(f"Dry run: would import {len(rows)} questions from {path}")
        if rows:
            print("Sample row:", rows[0])
        return rows
    if output is not None:
        write_normalized(rows, output)
        print(f"Wrote {len(rows)} questions to {output}")
        return rows

    from db import delete_questions_by_subject, get_supabase_uncached, upsert_questions_bulk

    client = get_supabase_uncached()
    if replace:
        delete_questions_by_subject(client, subject)
        print(f"Deleted existing {subject} questions")
    upsert_questions_bulk(client, rows, chunk_size=chunk_size)
    print(f"Upserted {len(rows)} questions from {path}")
    return rows


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Import a TCF question catalog.")
    parser.add_argument("catalog", help="Path to .json or .jsonl catalog")
    parser.add_argument("--subject", choices=SUBJECTS, default="listening", help="Catalog subject (default listening)")
    parser.add_argument("--output", default=None, help="Write normalized JSON here instead of upserting to Supabase")
    parser.add_argument("--chunk-size", type=int, default=200, help="Upsert chunk size (default 200)")
    parser.add_argument("--dry-run", action="store_true", help="Validate only, do not write")
    parser.add_argument("--replace", action="store_true", help="Delete existing questions of the subject, then upsert (fresh import)")
    args = parser.parse_args()
    run_import(
        Path(args.catalog),
        args.subject,
        output=Path(args.output) if args.output else None,
        chunk_size=args.chunk_size,
        dry_run=args.dry_run,
        replace=args.replace,
    )
