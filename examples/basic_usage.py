#!/usr/bin/env python3
"""Basic usage examples for the tabular-editor library."""

import tempfile
from pathlib import Path

from tabular_editor import (
    CellPatch,
    DeleteRow,
    FindReplaceSpec,
    InsertColumn,
    MacroOp,
    MacroSpec,
    RenameColumn,
    TabularEditService,
)


def write_sample(path: Path, rows: int = 1000):
    with open(path, "w", newline="") as f:
        f.write("id,name,email,score\n")
        for i in range(rows):
            f.write(f"{i},user {i},User{i}@Example.com,{i % 100}\n")


def browsing_example(service: TabularEditService, path: Path):
    """Demonstrate previews, sessions and windows."""
    print("=== Browsing Example ===")

    preview = service.preview(path)
    print(f"Detected delimiter: {preview.delimiter!r}")
    print(f"Headers: {preview.headers}")
    print(f"Preview rows: {len(preview.rows)}")

    info = service.open_session(path)
    while True:
        batch = service.read_batch(info.session_id, 400)
        print(f"Rows {batch.start}-{batch.end} (eof={batch.eof})")
        if batch.eof:
            break
    service.close_session(info.session_id)

    window = service.read_window(path, 500, 3)
    print(f"Window at 500: {window.rows}")
    print(f"Total rows: {service.count_rows(path)}")


def editing_example(service: TabularEditService, path: Path, workspace: Path):
    """Demonstrate saving staged edits and bulk transforms."""
    print("\n=== Editing Example ===")

    edited = workspace / "edited.csv"
    service.rewrite_with_edits(
        path,
        edited,
        ",",
        patches=[CellPatch(0, 1, "first user")],
        row_ops=[DeleteRow(1)],
        column_ops=[InsertColumn(4, "active"), RenameColumn(3, "points")],
        terminator="LF",
    )
    print(f"Saved edits to {edited.name}: {service.preview(edited).headers}")

    lowered = workspace / "lowered.csv"
    result = service.apply_macro(edited, lowered, ",", MacroSpec(MacroOp.LOWERCASE, 2))
    print(f"Lowercased {result.applied} emails")

    replaced = workspace / "replaced.csv"
    result = service.apply_find_replace(
        lowered, replaced, ",", FindReplaceSpec(r"@example\.com$", "@example.org", 2, regex=True)
    )
    print(f"Rewrote {result.applied} email domains")

    exported = workspace / "export.csv"
    service.rewrite_with_edits(replaced, exported, ",", encoding="UTF-16LE", bom=True)
    print(f"Exported UTF-16LE copy: {exported.stat().st_size} bytes")


def stats_example(service: TabularEditService, path: Path):
    """Demonstrate column statistics."""
    print("\n=== Column Stats Example ===")

    for stat in service.column_stats(path, ",", max_distinct=500):
        truncated = "+" if stat.distinct_truncated else ""
        print(f"{stat.name}: {stat.non_empty} values, {stat.distinct}{truncated} distinct, {stat.inferred}")


if __name__ == "__main__":
    service = TabularEditService()
    with tempfile.TemporaryDirectory() as temp_dir:
        workspace = Path(temp_dir)
        source = workspace / "users.csv"
        write_sample(source)

        browsing_example(service, source)
        editing_example(service, source, workspace)
        stats_example(service, source)

    service.shutdown()
    print("\nOperations:", [entry["operation"] for entry in service.get_operation_log()])
