#!/usr/bin/env python
from __future__ import annotations

import argparse
import csv
from pathlib import Path


COLUMNS = {
    "documents": ["title", "content", "category", "tags"],
    "faq": ["question", "answer", "category", "priority"],
    "manual": ["title", "content", "category", "section"],
    "scenarios": ["name", "description", "category", "triggers"],
    "templates": ["title", "content", "category"],
}


def sample_row(data_type: str, index: int) -> list[object]:
    if data_type == "faq":
        return [f"How do I reset password {index}?", f"Open settings and follow step {index}.", "account", index % 5 + 1]
    if data_type == "scenarios":
        return [f"Cancellation call {index}", f"Customer asks to cancel contract {index}.", "retention", "cancel;refund"]
    if data_type == "templates":
        return [f"Greeting {index}", "Hello {{customer_name}}, this is {{agent_name}}.", "greeting"]
    if data_type == "manual":
        return [f"Chapter {index}", f"Procedure text for chapter {index}.", "operations", f"section {index}"]
    return [f"Document {index}", f"Body of document {index}.", "general", "sample;seed"]


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a CSV seed file for workspace data seeding")
    parser.add_argument("--data-type", required=True, choices=sorted(COLUMNS), help="seed data type")
    parser.add_argument("--output", required=True, help="output file path (.csv)")
    parser.add_argument("--rows", type=int, default=10, help="number of well-formed rows")
    parser.add_argument("--malformed", type=int, default=0, help="number of rows missing their content field")
    args = parser.parse_args()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    header = COLUMNS[args.data_type]
    with output.open("w", newline="", encoding="utf-8") as fp:
        writer = csv.writer(fp)
        writer.writerow(header)
        for index in range(1, args.rows + 1):
            writer.writerow(sample_row(args.data_type, index))
        for index in range(1, args.malformed + 1):
            row = sample_row(args.data_type, args.rows + index)
            row[1] = ""
            writer.writerow(row)

    print(f"{args.data_type} seed file written: {output} ({args.rows} rows, {args.malformed} malformed)")


if __name__ == "__main__":
    main()
