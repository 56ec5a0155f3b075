"""
schema-codegen: generate entity classes, repository stubs and enum types
from an existing relational database schema.
"""

from schema_codegen.domain.models import ConflictPolicy, GenerationResult, RunStatus
from schema_codegen.pipeline import CancellationToken, GenerationOptions, generate

__version__ = "0.1.0"

__all__ = [
    "generate",
    "GenerationOptions",
    "GenerationResult",
    "CancellationToken",
    "ConflictPolicy",
    "RunStatus",
]
