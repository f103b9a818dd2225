from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from codeassay import __version__
from codeassay.engine.types import Assessment, CodeBlock, Duplication, FileAnalysis, Issue, Recommendation

REPORT_SCHEMA_VERSION = 1


def render_json(assessment: Assessment) -> str:
    summary = assessment.summary
    payload = {
        "schema_version": REPORT_SCHEMA_VERSION,
        "tool": {"name": "CodeAssay", "version": __version__},
        "summary": {
            "overall": summary.overall,
            "scores": {
                "security": summary.security,
                "performance": summary.performance,
                "quality": summary.quality,
                "accessibility": summary.accessibility,
            },
            "severity_counts": dict(summary.severity_counts),
            "category_counts": dict(summary.category_counts),
            "files_analyzed": len(assessment.files) - len(assessment.not_analyzed),
        },
        "duplication_summary": asdict(assessment.duplication_summary),
        "files": [_file_to_dict(analysis) for analysis in assessment.files],
        "issues": [_issue_to_dict(issue) for issue in assessment.issues],
        "duplications": [_duplication_to_dict(dup) for dup in assessment.duplications],
        "recommendations": [_recommendation_to_dict(rec) for rec in assessment.recommendations],
        "degraded": list(assessment.degraded_files),
        "not_analyzed": list(assessment.not_analyzed),
    }
    return json.dumps(payload, indent=2, sort_keys=True)


def _file_to_dict(analysis: FileAnalysis) -> dict[str, Any]:
    return {
        "path": analysis.path,
        "language": analysis.unit.language,
        "ecosystem": analysis.unit.ecosystem,
        "degraded": analysis.degraded,
        "skipped": analysis.skipped,
        "metrics": asdict(analysis.metrics),
    }


def _issue_to_dict(issue: Issue) -> dict[str, Any]:
    return {
        "id": issue.issue_id,
        "rule_id": issue.rule_id,
        "category": issue.category,
        "severity": issue.severity,
        "title": issue.title,
        "description": issue.description,
        "suggestion": issue.suggestion,
        "location": {"path": issue.path, "line": issue.line, "column": issue.column},
        "code": issue.code,
        "references": list(issue.references),
    }


def _block_to_dict(block: CodeBlock) -> dict[str, Any]:
    return {
        "path": block.path,
        "language": block.language,
        "line_start": block.line_start,
        "line_end": block.line_end,
        "lines": list(block.lines),
    }


def _duplication_to_dict(dup: Duplication) -> dict[str, Any]:
    return {
        "id": dup.duplication_id,
        "kind": dup.kind,
        "similarity": dup.similarity,
        "severity": dup.severity,
        "title": dup.title,
        "description": dup.description,
        "suggestion": dup.suggestion,
        "impact": dup.impact,
        "estimated_effort": dup.estimated_effort,
        "blocks": [_block_to_dict(block) for block in dup.blocks],
    }


def _recommendation_to_dict(rec: Recommendation) -> dict[str, Any]:
    return {
        "priority": rec.priority,
        "category": rec.category,
        "title": rec.title,
        "description": rec.description,
        "estimated_effort_hours": rec.estimated_effort_hours,
        "files": list(rec.files),
        "issue_ids": list(rec.issue_ids),
    }
