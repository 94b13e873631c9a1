from __future__ import annotations

from toggl_digest.m3.model import Summary
from toggl_digest.m3.summarise import group_by_client


def summary_to_markdown(summary: Summary, *, title: str = "Time entries", by_client: bool = False) -> str:
    if not summary.projects:
        return f"# {title}\n\n(no completed entries in range)\n"

    lines: list[str] = []
    lines.append(f"# {title}")
    lines.append("")

    if by_client:
        for c in group_by_client(summary.projects):
            lines.append(f"## {c.client_name} ({c.total_hours:.2f} h)")
            lines.append("")
            for p in c.projects:
                lines.extend(_project_lines(p, level="###"))
    else:
        for p in summary.projects:
            lines.extend(_project_lines(p, level="##"))

    lines.append(f"Total hours: {summary.total_hours:.2f}")
    return "\n".join(lines) + "\n"


def _project_lines(p, *, level: str) -> list[str]:
    out = [f"{level} {p.project_name}", "", f"Total hours: {p.total_hours:.2f}", ""]
    for e in p.entries:
        if e.rounded_duration_seconds is not None:
            raw = e.total_duration_seconds / 3600
            out.append(f"- {e.label} ({e.hours:.2f}, raw {raw:.2f})")
        else:
            out.append(f"- {e.label} ({e.hours:.2f})")
    out.append("")
    return out
