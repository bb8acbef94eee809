"""Suffix and pattern rules shared by the status parser and the classifier."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import FileType

PACKAGE_REFERENCE = re.compile(r'^<PackageReference\s+Include="[^"]+"\s+Version="[^"]*"\s*/>$')
MANIFEST_DEPENDENCY = re.compile(r'^<dependency\s+id="[^"]+"\s+version="[^"]*"\s*/>$')


@dataclass(frozen=True)
class ClassifierRules:
    """File-type suffixes and the version-reference patterns treated as noise.

    Temp suffixes mark build leftovers, the project suffix marks files whose
    dependency references get rewritten on every build, and manifest files
    additionally carry their own dependency element.
    """

    temp_suffixes: tuple[str, ...] = ("nuspec.txt", "csproj.bak")
    project_suffixes: tuple[str, ...] = (".csproj",)
    manifest_suffixes: tuple[str, ...] = (".nuspec",)
    reference_patterns: tuple[re.Pattern[str], ...] = (PACKAGE_REFERENCE,)
    manifest_patterns: tuple[re.Pattern[str], ...] = (PACKAGE_REFERENCE, MANIFEST_DEPENDENCY)

    def file_type(self, label: str) -> FileType:
        lowered = label.lower()
        if lowered.endswith(self.temp_suffixes):
            return FileType.TEMP
        if lowered.endswith(self.project_suffixes):
            return FileType.PROJECT
        return FileType.SOURCE

    def is_manifest(self, label: str) -> bool:
        return label.lower().endswith(self.manifest_suffixes)

    def is_reference(self, content: str, *, manifest: bool = False) -> bool:
        patterns = self.manifest_patterns if manifest else self.reference_patterns
        return any(pattern.match(content) for pattern in patterns)


DEFAULT_RULES = ClassifierRules()
