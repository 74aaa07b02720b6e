"""Skill package models and loader."""

from skillduggery.parser.models import (
    FindingSuppression,
    ScanFinding,
    ScanRun,
    ScanTrigger,
    Severity,
    SkillFile,
    SkillFileType,
    SkillManifest,
    SkillPackage,
    ThreatCategory,
)
from skillduggery.parser.skill_loader import SkillLoader

__all__ = [
    "FindingSuppression",
    "ScanFinding",
    "ScanRun",
    "ScanTrigger",
    "Severity",
    "SkillFile",
    "SkillFileType",
    "SkillLoader",
    "SkillManifest",
    "SkillPackage",
    "ThreatCategory",
]
