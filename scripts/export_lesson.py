#!/usr/bin/env python3
"""
Export a lesson resource to a paginated PDF.

Admins and editors get the PDF written to --output-dir. Everyone else
has it emailed; when no address is known the script asks for one.

Usage:
    # Download notes as an admin
    python scripts/export_lesson.py --lesson-id 64f0c2 --type notes --role admin

    # Email Q&A to a student (prompts for the address if --email is omitted)
    python scripts/export_lesson.py --lesson-id 64f0c2 --type qa --name "Priya"

    # Offline: items from a JSON file, page boundaries only
    python scripts/export_lesson.py --lesson-id demo --type notes --items-json notes.json --preview
"""

import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from src.common.config import get_settings
from src.common.error_handling import EmailRequiredError
from src.common.logger import setup_logging
from src.export.assembly import visible_items
from src.export.controller import ExportController, ExportRequest
from src.export.models import RESOURCE_TYPES, CallerIdentity, ContentItem
from src.export.staging import get_staging_surface


def load_items(path: str) -> List[ContentItem]:
    """
    Read content items from a JSON file.

    Accepts a plain list of items or the content API's grouped shape
    (``[{"type", "count", "docs"}]``).
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    items = []
    for entry in data:
        if "docs" in entry:
            items.extend(ContentItem.from_api(doc) for doc in entry["docs"])
        else:
            items.append(ContentItem.from_api(entry))
    return items


def prompt_for_email() -> Optional[str]:
    print("\nமின்னஞ்சல் முகவரி தேவை | Email address required")
    return input("Send the PDF to (your@email.com): ").strip() or None


async def run_export(args: argparse.Namespace) -> int:
    controller = ExportController(get_settings())
    identity = CallerIdentity(role=args.role, can_edit=args.can_edit, email=args.email, name=args.name)

    if args.items_json:
        items = load_items(args.items_json)
    else:
        items = await controller.content_api.get_contents(args.lesson_id, args.type)
    print(f"Loaded {len(items)} {args.type} items for lesson {args.lesson_id}")

    try:
        if args.preview:
            pages = await controller.pipeline.preview_pages(args.type, visible_items(items, identity))
            for index, page in enumerate(pages):
                flag = " (oversized)" if page.oversized else ""
                print(f"  Page {index + 1}: {page.height:.0f}px, {page.units} units{flag}")
            return 0

        request = ExportRequest(
            lesson_id=args.lesson_id,
            resource_type=args.type,
            identity=identity,
            items=items,
        )
        try:
            outcome = await controller.export(request, email_prompt=prompt_for_email)
        except EmailRequiredError as e:
            print(f"Aborted: {e.message}")
            return 2
    finally:
        await get_staging_surface().close()

    print(f"\n{outcome.title}\n{outcome.message}")
    for warning in outcome.warnings:
        print(f"  warning: {warning}")

    if not outcome.succeeded:
        return 1

    if outcome.document is not None:
        os.makedirs(args.output_dir, exist_ok=True)
        path = os.path.join(args.output_dir, outcome.document.filename)
        with open(path, "wb") as f:
            f.write(outcome.document.pdf_bytes)
        print(f"Saved: {path}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Export a lesson resource to a paginated PDF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--lesson-id", required=True, help="Lesson identifier")
    parser.add_argument("--type", required=True, choices=sorted(RESOURCE_TYPES), help="Resource type")
    parser.add_argument("--role", default="user", help="Caller role ('admin' downloads directly)")
    parser.add_argument("--can-edit", action="store_true", help="Caller has edit capability")
    parser.add_argument("--email", help="Recipient address for emailed exports")
    parser.add_argument("--name", help="Caller display name")
    parser.add_argument("--output-dir", default=".", help="Where downloaded PDFs are written")
    parser.add_argument("--items-json", metavar="PATH", help="Read items from a JSON file instead of the API")
    parser.add_argument("--preview", action="store_true", help="Only print page boundaries")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, debug=args.debug or settings.debug_mode)

    try:
        sys.exit(asyncio.run(run_export(args)))
    except Exception as e:
        print(f"Export failed: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
