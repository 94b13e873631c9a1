from __future__ import annotations

from toggl_digest.m4.rollup import PeriodRollup


def _signed(h: float) -> str:
    # Near-zero deltas print as ±0.00.
    if abs(h) < 0.005:
        return "±0.00"
    return f"{h:+.2f}"


def rollups_to_markdown(rollups: list[PeriodRollup], *, show_days: bool = False) -> str:
    if not rollups:
        return "# Rollups\n\n(no days in range)\n"

    lines: list[str] = ["# Rollups", ""]
    for r in rollups:
        lines.append(f"## {r.label}")
        lines.append("")
        lines.append(f"- total: {r.total_hours:.2f} h")
        lines.append(f"- target: {r.target_hours:.2f} h over {r.working_days} working day(s)")
        lines.append(f"- delta: {_signed(r.delta_vs_target)} h")
        if show_days:
            lines.append("")
            for d in r.days:
                mark = " (non-working)" if d.is_non_working else ""
                lines.append(
                    f"  - {d.date:%a} {d.date.isoformat()}: {d.total_hours:.2f} h"
                    f" ({_signed(d.delta_vs_target)}){mark}"
                )
        lines.append("")
    return "\n".join(lines)
