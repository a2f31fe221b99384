"""
Renderers for discovery results
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import pandas as pd
import yaml
from tabulate import tabulate

from .models import DiscoveryResult, Resource

logger = logging.getLogger(__name__)

TABLE_COLUMNS = [('PROVIDER', 10), ('NAME', 25), ('TYPE', 30), ('ID', 25), ('REGION', 15), ('ZONE', 15)]
RESOURCE_COLUMNS = ['Provider', 'ID', 'Name', 'Type', 'Region', 'Zone', 'Status', 'Created', 'Tags', 'Metadata']


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def render_json(result: DiscoveryResult) -> str:
    return result.to_json(indent=2)


def render_yaml(result: DiscoveryResult) -> str:
    return yaml.safe_dump(result.to_dict(), default_flow_style=False, sort_keys=False)


def render_table(result: DiscoveryResult) -> str:
    """Human readable resource table followed by totals and errors"""
    if not result.resources:
        lines = ["No resources to display"]
    else:
        rows = []
        for resource in result.resources:
            values = [
                resource.provider.value.upper(),
                resource.name or "<unnamed>",
                resource.type,
                resource.id,
                resource.region,
                resource.zone or "",
            ]
            rows.append([truncate(v, width) for v, (_, width) in zip(values, TABLE_COLUMNS)])
        lines = [
            tabulate(rows, headers=[name for name, _ in TABLE_COLUMNS], tablefmt='simple'),
            "",
            f"Total: {len(result.resources)} resources",
        ]

    if result.errors:
        lines.append("")
        lines.append(tabulate(
            [[e.severity.value.upper(), e.provider.value, e.region or "", e.resource_type or "", e.message]
             for e in result.errors],
            headers=['SEVERITY', 'PROVIDER', 'REGION', 'RESOURCE TYPE', 'MESSAGE'],
            tablefmt='simple'
        ))
    return "\n".join(lines)


def render(result: DiscoveryResult, output_format: str) -> str:
    renderers = {
        'json': render_json,
        'yaml': render_yaml,
        'table': render_table,
    }
    if output_format not in renderers:
        raise ValueError(f"Unsupported output format: {output_format}")
    return renderers[output_format](result)


def _resource_row(resource: Resource) -> Dict[str, Any]:
    return {
        'Provider': resource.provider.value,
        'ID': resource.id,
        'Name': resource.name,
        'Type': resource.type,
        'Region': resource.region,
        'Zone': resource.zone or '',
        'Status': resource.status or '',
        'Created': resource.created_at.isoformat() if resource.created_at else '',
        'Tags': ', '.join(f"{k}={v}" for k, v in sorted(resource.tags.items())),
        'Metadata': json.dumps(resource.metadata, sort_keys=True),
    }


def export_excel(result: DiscoveryResult, output_file: Union[str, Path]) -> Path:
    """Export discovery result to an Excel workbook"""
    output_file = Path(output_file)
    meta = result.metadata

    with pd.ExcelWriter(output_file, engine='openpyxl') as writer:
        # Summary sheet
        summary_data = {
            'Metric': [
                'Start Time',
                'End Time',
                'Duration (s)',
                'Total Resources',
                'Errors',
                'Warnings',
                'Filters Applied'
            ],
            'Value': [
                meta.start_time.isoformat(),
                meta.end_time.isoformat(),
                f"{meta.duration:.2f}",
                meta.resource_count,
                meta.error_count,
                meta.warning_count,
                len(meta.filters)
            ]
        }
        for provider, count in sorted(meta.provider_stats.items()):
            summary_data['Metric'].append(f"Resources ({provider})")
            summary_data['Value'].append(count)
        pd.DataFrame(summary_data).to_excel(writer, sheet_name='Summary', index=False)

        resource_rows: List[Dict[str, Any]] = [_resource_row(r) for r in result.resources]
        pd.DataFrame(resource_rows, columns=RESOURCE_COLUMNS).to_excel(
            writer, sheet_name='Resources', index=False)

        if result.errors:
            error_data = [{
                'Severity': e.severity.value,
                'Provider': e.provider.value,
                'Region': e.region or '',
                'Resource Type': e.resource_type or '',
                'Message': e.message,
                'Timestamp': e.timestamp.isoformat(),
            } for e in result.errors]
            pd.DataFrame(error_data).to_excel(writer, sheet_name='Errors', index=False)

    logger.info(f"Exported discovery result to {output_file}")
    return output_file
