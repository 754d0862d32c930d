"""
Attendance report export.
Writes a date range of check-ins to Excel (with a summary sheet) or CSV.
"""
import datetime
from pathlib import Path
from typing import Optional, Union

import pandas as pd
from openpyxl.utils import get_column_letter

from utils.config import config
from utils.logger import logger

REPORT_COLUMNS = [
    'Employee Name', 'Employee ID', 'Department', 'Date',
    'Check-in Time', 'Status', 'Confidence Score'
]

def build_attendance_frame(attendance_system, start, end) -> pd.DataFrame:
    """Check-ins between `start` and `end` (inclusive) as a report DataFrame."""
    rows = attendance_system.get_attendance_range(start, end)
    if not rows:
        return pd.DataFrame(columns=REPORT_COLUMNS)

    df = pd.DataFrame(rows)
    check_in = pd.to_datetime(df['check_in_time'])

    report = pd.DataFrame({
        'Employee Name': df['name'],
        'Employee ID': df['employee_id'],
        'Department': df['department'],
        'Date': pd.to_datetime(df['date']).dt.strftime('%b %d, %Y'),
        'Check-in Time': check_in.dt.strftime('%I:%M:%S %p'),
        'Status': df['status'].str.capitalize(),
        'Confidence Score': df['confidence_score'].map(
            lambda v: f"{v:.0f}%" if pd.notna(v) else ""
        ),
    })
    return report[REPORT_COLUMNS]

def default_report_path(start, end, extension: str = "xlsx") -> Path:
    return Path(config.attendance.reports_directory) / f"attendance_{start}_to_{end}.{extension}"

def export_attendance_report(attendance_system, start: Union[str, datetime.date],
                             end: Union[str, datetime.date],
                             output_path: Union[str, Path] = None) -> Optional[Path]:
    """
    Export check-ins in a date range.

    A `.csv` output path writes CSV; anything else writes an Excel workbook with
    'Attendance' and 'Summary' sheets. Returns the written path, or None when
    the range has no records.
    """
    report = build_attendance_frame(attendance_system, start, end)
    if report.empty:
        logger.warning(f"No attendance records to export between {start} and {end}")
        return None

    output_path = Path(output_path) if output_path else default_report_path(start, end)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if output_path.suffix.lower() == ".csv":
        report.to_csv(output_path, index=False)
    else:
        status_counts = report['Status'].value_counts()
        summary_stats = {
            'Total Records': len(report),
            'Unique Employees': report['Employee ID'].nunique(),
            'Present': int(status_counts.get('Present', 0)),
            'Late': int(status_counts.get('Late', 0)),
            'Date Range': f"{start} to {end}",
            'Report Generated': datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        }
        with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
            report.to_excel(writer, sheet_name='Attendance', index=False)
            summary_df = pd.DataFrame(list(summary_stats.items()), columns=['Metric', 'Value'])
            summary_df.to_excel(writer, sheet_name='Summary', index=False)

            worksheet = writer.sheets['Attendance']
            for idx, column in enumerate(REPORT_COLUMNS):
                width = max(len(column), int(report[column].astype(str).str.len().max()))
                worksheet.column_dimensions[get_column_letter(idx + 1)].width = width + 2

    logger.info(f"Exported {len(report)} attendance records to: {output_path}")
    return output_path
