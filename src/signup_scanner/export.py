"""Export scan results to CSV or JSON."""

import csv
import json

from .models import ScanResult

FIELDNAMES = [
    "platform",
    "domain",
    "email",
    "category",
    "confidence",
    "detection_method",
    "subject",
    "date",
    "message_id",
    "last_seen",
]


def _service_row(service) -> dict:
    return {
        "platform": service.platform,
        "domain": service.domain,
        "email": service.email,
        "category": service.category.value,
        "confidence": service.confidence,
        "detection_method": service.detection_method.value,
        "subject": service.subject,
        "date": service.date,
        "message_id": service.message_id,
        "last_seen": service.last_seen,
    }


def export_scan(scan_result: ScanResult, format: str, output_path: str) -> None:
    """Export detected services to a file.

    Args:
        scan_result: The scan result to export.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.
    """
    rows = [_service_row(s) for s in scan_result.services]

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
            writer.writeheader()
            writer.writerows(rows)
    elif format == "json":
        payload = {
            "user_id": scan_result.user_id,
            "query": scan_result.query,
            "scan_date": scan_result.scan_date,
            "total_messages": scan_result.total_messages,
            "services": rows,
        }
        with open(output_path, "w") as f:
            json.dump(payload, f, indent=2)
    else:
        raise ValueError(f"Unsupported export format: {format}")
