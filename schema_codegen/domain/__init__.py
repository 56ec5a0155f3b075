"""
Domain module for schema-codegen.

This module contains the metadata model and the pure rules that build it
(type mapping, naming, relationship and enum extraction), separated from
database and file-system concerns.
"""

from .models import (
    Dialect,
    SemanticType,
    AssemblyState,
    ArtifactKind,
    ConflictPolicy,
    WriteStatus,
    RunStatus,
    Severity,
    RawColumn,
    RawForeignKey,
    RawIndex,
    RawEnumColumn,
    RawTable,
    EnumDescriptor,
    ColumnDescriptor,
    IndexDescriptor,
    AssociationDescriptor,
    TableDescriptor,
    RenderedArtifact,
    Diagnostic,
    ArtifactRecord,
    TableStatus,
    GenerationResult,
)

from .type_mapping import (
    TypeMapper,
    TypeMapping,
    default_type_table,
    normalize_native_type,
    parse_static_default,
)

from .naming import (
    NameNormalizer,
    NameScope,
    split_words,
    to_upper_camel,
    to_lower_camel,
    to_enum_case,
)

from .enums import EnumExtractor

from .relationships import RelationshipResolver

__all__ = [
    # Core models
    'Dialect',
    'SemanticType',
    'AssemblyState',
    'ArtifactKind',
    'ConflictPolicy',
    'WriteStatus',
    'RunStatus',
    'Severity',
    'RawColumn',
    'RawForeignKey',
    'RawIndex',
    'RawEnumColumn',
    'RawTable',
    'EnumDescriptor',
    'ColumnDescriptor',
    'IndexDescriptor',
    'AssociationDescriptor',
    'TableDescriptor',
    'RenderedArtifact',
    'Diagnostic',
    'ArtifactRecord',
    'TableStatus',
    'GenerationResult',

    # Type mapping
    'TypeMapper',
    'TypeMapping',
    'default_type_table',
    'normalize_native_type',
    'parse_static_default',

    # Naming
    'NameNormalizer',
    'NameScope',
    'split_words',
    'to_upper_camel',
    'to_lower_camel',
    'to_enum_case',

    # Extraction
    'EnumExtractor',
    'RelationshipResolver',
]
