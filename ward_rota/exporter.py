"""
exporter.py — Export Layer for the ward rota

Outputs:
  - CSV: flat (date, slot, role, doctor, reason) rows including derived OFF
  - Excel (.xlsx): (date, slot) × role grid with doctor names
  - Month report (.txt): open items blocking month approval, grouped by week
  - Copy-forward summary (.txt): audit counts of a carry-forward merge
  - Workload chart (.png): per-doctor admissions / ward / absent slots

Usage:
  from ward_rota.exporter import export_week_csv, export_week_excel, export_month_report
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ward_rota.carry_forward import CopyForwardResult
from ward_rota.month import MissingAdmissions, MissingWeek, MonthReport
from ward_rota.reconcile import ROLE_ABSENT, ROLE_OFF, WeekEditor
from ward_rota.schedule_config import ABSENCE_REASON_LABELS, ROLE_ADMISSIONS, ROLE_WARD, SLOTS

logger = logging.getLogger(__name__)

ROLE_ORDER = [ROLE_ADMISSIONS, ROLE_WARD, ROLE_ABSENT, ROLE_OFF]


def _roster_rows(editor: WeekEditor) -> List[Dict[str, str]]:
    rows = []
    for day, slot, role, doctor_id in editor.iter_roster():
        doctor = editor.doctors.get(doctor_id)
        reason = ""
        if role == ROLE_ABSENT:
            reason = editor.absences(day, slot)[doctor_id].reason
        rows.append({
            "date":   day.isoformat(),
            "slot":   slot,
            "role":   role,
            "doctor": doctor.name if doctor else doctor_id,
            "reason": reason,
        })
    return rows


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_week_csv(editor: WeekEditor, output_path: Path) -> int:
    """
    Export one week to flat CSV: date, slot, role, doctor, reason.
    Returns the number of rows written.
    """
    import csv
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    rows = _roster_rows(editor)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["date", "slot", "role", "doctor", "reason"])
        writer.writeheader()
        writer.writerows(rows)

    logger.info(f"CSV exported → {output_path}")
    return len(rows)


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def export_week_excel(editor: WeekEditor, output_path: Path) -> None:
    """
    Export one week to a formatted Excel grid.

    Rows = (Date, Slot), columns = role, cells = "; "-joined doctor names.
    Absent doctors show their reason label in brackets.
    """
    import pandas as pd

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    rows = []
    for r in _roster_rows(editor):
        name = r["doctor"]
        if r["role"] == ROLE_ABSENT:
            name = f"{name} ({ABSENCE_REASON_LABELS.get(r['reason'], r['reason'])})"
        rows.append({"Date": r["date"], "Slot": r["slot"], "Role": r["role"], "Doctor": name})

    df = pd.DataFrame(rows, columns=["Date", "Slot", "Role", "Doctor"])
    if df.empty:
        df.to_excel(output_path, index=False)
        return

    grid = df.pivot_table(
        index=["Date", "Slot"],
        columns="Role",
        values="Doctor",
        aggfunc=lambda x: "; ".join(x),
    )
    grid = grid[[r for r in ROLE_ORDER if r in grid.columns]].fillna("")

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        grid.to_excel(writer, sheet_name="Week")
        _format_excel_grid(writer, "Week")

    logger.info(f"Excel exported → {output_path}")


ROLE_FILLS = {
    ROLE_ADMISSIONS: "F4CCCC",
    ROLE_WARD:       "D9E7F5",
    ROLE_ABSENT:     "E7E6E6",
    ROLE_OFF:        "FFFFFF",
}
DAY_BAND = "F2F2F2"


def _format_excel_grid(writer: Any, sheet_name: str) -> None:
    """
    Role-coloured header, frozen Date/Slot columns, and one shade band per
    date so the AM and PM rows of a day read together.
    """
    from openpyxl.styles import Alignment, Font, PatternFill

    ws = writer.sheets[sheet_name]
    ws.freeze_panes = "C2"

    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = PatternFill("solid", fgColor=ROLE_FILLS.get(cell.value, "D9D9D9"))

    band = PatternFill("solid", fgColor=DAY_BAND)
    shaded, last_day = False, None
    for row in ws.iter_rows(min_row=2):
        # merged Date cells leave the PM row blank
        day = row[0].value
        if day is not None and day != last_day:
            shaded = not shaded
            last_day = day
        for cell in row:
            if shaded:
                cell.fill = band
            if cell.column > 2:
                cell.alignment = Alignment(wrap_text=True, vertical="top")

    ws.column_dimensions["A"].width = 12
    ws.column_dimensions["B"].width = 6
    for col in ws.iter_cols(min_col=3, max_row=1):
        ws.column_dimensions[col[0].column_letter].width = 28


# ---------------------------------------------------------------------------
# Month Report
# ---------------------------------------------------------------------------

def export_month_report(report: MonthReport, output_path: Path) -> str:
    """Write the month approval report; returns the text."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    sep = "=" * 70
    status = "✓ READY" if report.ok else f"✗ {len(report.missing)} OPEN ITEM(S)"
    lines = [
        sep,
        f"  MONTH APPROVAL REPORT — {report.month_start:%Y-%m}",
        sep,
        "",
        f"  Weeks in range:   {len(report.week_starts)}"
        + (f"  ({report.week_starts[0]} → {report.week_starts[-1]})" if report.week_starts else ""),
        f"  Status:           {status}",
    ]
    if report.approved_week_ids:
        lines.append(f"  Weeks approved:   {len(report.approved_week_ids)}")

    by_week: Dict[date, List[Any]] = {}
    for entry in report.missing:
        by_week.setdefault(entry.week_start, []).append(entry)

    for week_start in sorted(by_week):
        lines += ["", "─" * 70, f"  Week of {week_start}", "─" * 70]
        for entry in by_week[week_start]:
            if isinstance(entry, MissingWeek):
                lines.append("  week not created")
            elif isinstance(entry, MissingAdmissions):
                lines.append(f"  {entry.date} {entry.slot:<3} no admissions doctor")

    lines += ["", sep]
    text = "\n".join(lines)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(text)

    logger.info(f"Month report exported → {output_path}")
    return text


# ---------------------------------------------------------------------------
# Copy-forward summary
# ---------------------------------------------------------------------------

def export_copy_summary(
    result: CopyForwardResult,
    output_path: Path,
    source_week_start: Optional[date] = None,
    target_week_start: Optional[date] = None,
) -> str:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    sep = "=" * 70
    lines = [sep, "  COPY-FORWARD SUMMARY", sep, ""]
    if source_week_start and target_week_start:
        lines.append(f"  {source_week_start} → {target_week_start}")
        lines.append("")
    lines += [
        f"  Ward rows inserted:          {result.ward_inserted}",
        f"  Absence rows inserted:       {result.absences_inserted}",
        f"  Skipped (admissions):        {result.skipped_due_to_admissions}",
        "",
        "  Ward and absence rows in the target week were replaced.",
        sep,
    ]
    text = "\n".join(lines)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(text)

    logger.info(f"Copy summary exported → {output_path}")
    return text


# ---------------------------------------------------------------------------
# Workload chart (matplotlib)
# ---------------------------------------------------------------------------

def export_workload_chart(
    counts: Mapping[str, Mapping[str, int]],
    output_path: Path,
    doctor_names: Optional[Mapping[str, str]] = None,
    title: str = "Slot workload by doctor",
) -> None:
    """Stacked bars of admissions / ward / absent slots per doctor."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    names = doctor_names or {}

    doctors = sorted(counts, key=lambda d: names.get(d, d))
    labels = [names.get(d, d) for d in doctors]
    x = range(len(doctors))

    fig, ax = plt.subplots(figsize=(max(6, len(doctors) * 0.8), 5))
    bottom = [0] * len(doctors)
    colors = {ROLE_ADMISSIONS: "#b22222", ROLE_WARD: "#4a90d9", ROLE_ABSENT: "#b0b0b0"}
    for role in (ROLE_ADMISSIONS, ROLE_WARD, ROLE_ABSENT):
        values = [counts[d].get(role, 0) for d in doctors]
        ax.bar(x, values, bottom=bottom, color=colors[role], alpha=0.85, width=0.65,
               label=role.capitalize())
        bottom = [b + v for b, v in zip(bottom, values)]

    ax.set_xticks(list(x))
    ax.set_xticklabels(labels, rotation=40, ha="right", fontsize=9)
    ax.set_ylabel(f"Slots ({'/'.join(SLOTS)})")
    ax.set_title(title, fontsize=13, fontweight="bold")
    ax.legend()
    ax.grid(axis="y", alpha=0.3)
    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)

    logger.info(f"Workload chart exported → {output_path}")
